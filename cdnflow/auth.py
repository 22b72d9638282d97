from __future__ import annotations

import os
from dataclasses import replace

from cdnflow.config import CdnFlowConfig


ACCESS_KEY_ENV_NAMES = ("QINIU_ACCESS_KEY", "QINIU_AK")
SECRET_KEY_ENV_NAMES = ("QINIU_SECRET_KEY", "QINIU_SK")


def _first_env(names: tuple[str, ...]) -> str:
    for env_name in names:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def resolve_access_key(config_value: str | None = None) -> str:
    """Resolve the Qiniu access key from config, falling back to the environment."""
    if config_value and config_value.strip():
        return config_value.strip()
    return _first_env(ACCESS_KEY_ENV_NAMES)


def resolve_secret_key(config_value: str | None = None) -> str:
    if config_value and config_value.strip():
        return config_value.strip()
    return _first_env(SECRET_KEY_ENV_NAMES)


def with_resolved_credentials(config: CdnFlowConfig) -> CdnFlowConfig:
    return replace(
        config,
        access_key=resolve_access_key(config.access_key),
        secret_key=resolve_secret_key(config.secret_key),
    )


def credentials_hint() -> str:
    return (
        "Qiniu credentials are missing. Set `QINIU_ACCESS_KEY` and `QINIU_SECRET_KEY`, "
        "or fill `access_key`/`secret_key` in `.cdnflow.json`."
    )
