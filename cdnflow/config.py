from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from cdnflow.errors import ConfigError
from cdnflow.models import RetentionPolicy


CONFIG_FILENAME = ".cdnflow.json"
STATE_DB_FILENAME = ".cdnflow_state.db"
DEFAULT_LOG_FILE = "upload-log.json"
DEFAULT_WORKERS = 10
REQUIRED_FIELDS = ("access_key", "secret_key", "bucket", "cdn_host", "output_dir")
CDN_HOST_RE = re.compile(r"^(https?:)?//")


@dataclass(slots=True)
class ExpireConfig:
    time: int | None = None
    versions: int | None = None

    @property
    def policy(self) -> RetentionPolicy:
        return RetentionPolicy(versions=self.versions, time=self.time)


@dataclass(slots=True)
class CdnFlowConfig:
    access_key: str
    secret_key: str
    bucket: str
    cdn_host: str
    output_dir: str
    dir: str = ""
    log_file: str = DEFAULT_LOG_FILE
    expire: ExpireConfig | None = None
    exclude: list[str] = field(default_factory=list)
    refresh: bool = False
    prefetch: bool = False
    silent: bool = False
    dry: bool = False
    workers: int = DEFAULT_WORKERS
    base_dir: str = field(default="", compare=False)

    def validate(self) -> None:
        for name in REQUIRED_FIELDS:
            if not getattr(self, name):
                raise ConfigError(f"Missing required property: {name}")
        if not CDN_HOST_RE.match(self.cdn_host):
            raise ConfigError(f"Illegal cdn host: {self.cdn_host!r}")
        if self.workers < 1:
            raise ConfigError("workers must be at least 1")
        if self.expire is not None:
            if self.expire.versions is not None and self.expire.versions < 0:
                raise ConfigError("expire.versions must not be negative")
            if self.expire.time is not None and self.expire.time < 0:
                raise ConfigError("expire.time must not be negative")

    @property
    def base_path(self) -> Path:
        return Path(self.base_dir or Path.cwd()).resolve()

    @property
    def output_path(self) -> Path:
        return (self.base_path / self.output_dir).resolve()

    @property
    def state_db_path(self) -> Path:
        return self.base_path / STATE_DB_FILENAME

    @property
    def key_prefix(self) -> str:
        return f"{self.dir}/" if self.dir else ""

    @property
    def public_path(self) -> str:
        path = f"{self.cdn_host.rstrip('/')}/"
        if self.dir:
            path += f"{self.dir}/"
        return path

    @property
    def remote_base_url(self) -> str:
        # e.g. //cdn.host/prefix/ -> http://cdn.host/prefix/
        base = self.public_path
        if base.startswith("//"):
            base = "http:" + base
        return base

    @property
    def retention_policy(self) -> RetentionPolicy | None:
        if self.expire is None:
            return None
        return self.expire.policy

    def url_for(self, filename: str) -> str:
        return f"{self.remote_base_url}{filename}"


def config_path(base_dir: Path | None = None) -> Path:
    return (base_dir or Path.cwd()).resolve() / CONFIG_FILENAME


def _int_field(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _parse_expire(value: Any) -> ExpireConfig | None:
    if value in (None, False):
        return None
    if not isinstance(value, dict):
        raise ConfigError("expire must be an object with optional `time` and `versions`")
    time_value = value.get("time")
    versions_value = value.get("versions")
    return ExpireConfig(
        time=None if time_value is None else _int_field("expire.time", time_value),
        versions=None if versions_value is None else _int_field("expire.versions", versions_value),
    )


def config_from_dict(data: dict[str, Any], *, base_dir: Path | None = None) -> CdnFlowConfig:
    exclude = data.get("exclude") or []
    if isinstance(exclude, str):
        exclude = [exclude]
    return CdnFlowConfig(
        access_key=data.get("access_key", ""),
        secret_key=data.get("secret_key", ""),
        bucket=data.get("bucket", ""),
        cdn_host=data.get("cdn_host", ""),
        output_dir=data.get("output_dir", ""),
        dir=(data.get("dir") or "").strip("/"),
        log_file=data.get("log_file", DEFAULT_LOG_FILE) or "",
        expire=_parse_expire(data.get("expire")),
        exclude=[str(pattern) for pattern in exclude],
        refresh=bool(data.get("refresh", False)),
        prefetch=bool(data.get("prefetch", False)),
        silent=bool(data.get("silent", False)),
        dry=bool(data.get("dry", False)),
        workers=_int_field("workers", data.get("workers", DEFAULT_WORKERS)),
        base_dir=str((base_dir or Path.cwd()).resolve()),
    )


def load_config(base_dir: Path | None = None) -> CdnFlowConfig:
    path = config_path(base_dir)
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}. Run `cdnflow init <bucket> <cdn_host> <output_dir>` first."
        )

    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return config_from_dict(data, base_dir=path.parent)


def save_config(config: CdnFlowConfig, base_dir: Path | None = None) -> Path:
    path = config_path(base_dir)
    payload = asdict(config)
    payload.pop("base_dir", None)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
        fh.write("\n")
    return path
