from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from cdnflow.auth import credentials_hint, with_resolved_credentials
from cdnflow.config import CdnFlowConfig
from cdnflow.diff import classify, to_log_record
from cdnflow.errors import ConfigError, TransportError
from cdnflow.expiry import compute_clean, retained_records
from cdnflow.filters import build_exclude
from cdnflow.models import EXCLUDED_HASH, FileRecord, LocalFile, LogRecord, UploadStatus
from cdnflow.pool import run_jobs
from cdnflow.qiniu_remote import QiniuRemote
from cdnflow.scanner import scan_local_files
from cdnflow.state_db import LAST_DEPLOY_KEY, load_records, replace_snapshot, set_meta
from cdnflow.transfer_ui import UploadProgressUI
from cdnflow.version_log import VersionLog, dumps, loads

logger = logging.getLogger(__name__)

LOG_FOUND_STATUSES = {200, 304}


@dataclass(slots=True, frozen=True)
class RemoteState:
    files: tuple[FileRecord, ...]
    history: tuple[LogRecord, ...] = ()
    log_found: bool = False


@dataclass(slots=True)
class DeployPlan:
    timestamp: int
    status: UploadStatus
    log: VersionLog
    log_records: list[LogRecord]
    local_files: dict[str, LocalFile] = field(default_factory=dict)


@dataclass(slots=True)
class DeployResult:
    status: UploadStatus
    log_records: list[LogRecord]
    timestamp: int
    dry: bool
    hash_mismatches: list[str] = field(default_factory=list)
    cdn_errors: list[str] = field(default_factory=list)


def prepare_config(config: CdnFlowConfig) -> CdnFlowConfig:
    """Resolve credentials and validate before any I/O happens."""
    config = with_resolved_credentials(config)
    if not config.access_key or not config.secret_key:
        raise ConfigError(credentials_hint())
    config.validate()
    return config


def build_remote(config: CdnFlowConfig) -> QiniuRemote:
    return QiniuRemote(
        access_key=config.access_key,
        secret_key=config.secret_key,
        bucket=config.bucket,
        prefix=config.key_prefix,
    )


def load_remote_state(config: CdnFlowConfig, remote: QiniuRemote) -> RemoteState:
    listed = remote.list_files()
    log_file = config.log_file
    files = tuple(item for item in listed if not (log_file and item.filename == log_file))
    if not log_file or len(files) == len(listed):
        return RemoteState(files=files)

    url = config.url_for(log_file)
    fetched = remote.fetch(url)
    if fetched.status_code in LOG_FOUND_STATUSES:
        return RemoteState(files=files, history=tuple(loads(fetched.text)), log_found=True)
    if fetched.status_code == 404:
        logger.warning("Version log not found at %s, starting a fresh history", url)
        return RemoteState(files=files)
    raise TransportError(f"fetch version log {url}", fetched.text, status_code=fetched.status_code)


async def plan_deployment(
    config: CdnFlowConfig,
    remote: QiniuRemote,
    *,
    now: float | None = None,
) -> DeployPlan:
    state = load_remote_state(config, remote)
    log = VersionLog(state.history)

    exclude = build_exclude(config.exclude)
    previous_records = await load_records(config.state_db_path)
    local_files = scan_local_files(
        config.output_path,
        exclude=exclude,
        previous_records=previous_records,
        max_workers=config.workers,
    )
    diff = classify(state.files, [local.record for local in local_files], exclude)

    timestamp = int(now if now is not None else time.time())
    log.append(to_log_record(diff, timestamp))

    policy = config.retention_policy
    clean: list[FileRecord] = []
    if policy is not None:
        clean = compute_clean(log, policy)

    status = UploadStatus(
        remote=state.files,
        excluded=diff.excluded,
        overwrite=diff.overwrite,
        omit=diff.omit,
        upload=diff.upload,
        clean=tuple(clean),
    )
    logger.info(
        "Planned deployment: %d upload, %d overwrite, %d omit, %d excluded, %d clean",
        len(status.upload),
        len(status.overwrite),
        len(status.omit),
        len(status.excluded),
        len(status.clean),
    )
    return DeployPlan(
        timestamp=timestamp,
        status=status,
        log=log,
        log_records=retained_records(log, policy),
        local_files={local.filename: local for local in local_files},
    )


def _upload_phase(
    config: CdnFlowConfig,
    remote: QiniuRemote,
    plan: DeployPlan,
    *,
    console: Console | None,
) -> list[str]:
    records = [*plan.status.overwrite, *plan.status.upload]
    if not records:
        return []
    if config.dry:
        for record in records:
            logger.info("dry upload %s (hash %s)", record.filename, record.hash)
        return []

    progress = UploadProgressUI(len(records), console=console) if console is not None else nullcontext()

    with progress as ui:

        def make_job(record: FileRecord):
            def _job() -> str | None:
                if ui is not None:
                    ui.start(record.filename)
                try:
                    data = Path(plan.local_files[record.filename].path).read_bytes()
                    remote_hash = remote.upload(record.filename, data)
                except Exception:
                    if ui is not None:
                        ui.fail(record.filename)
                    raise
                if ui is not None:
                    ui.complete(record.filename, len(data))
                if remote_hash == record.hash:
                    return None
                logger.warning(
                    "Hash mismatch for %s: local %s, remote %s",
                    record.filename,
                    record.hash,
                    remote_hash,
                )
                return record.filename

            return f"upload:{record.filename}", _job

        results = run_jobs(
            [make_job(record) for record in records],
            max_workers=config.workers,
            thread_name_prefix="cdnflow-upload",
        )

    return sorted(filename for filename in results if filename is not None)


def _clean_phase(config: CdnFlowConfig, remote: QiniuRemote, plan: DeployPlan) -> None:
    filenames = [record.filename for record in plan.status.clean]
    if not filenames:
        return
    if config.dry:
        logger.info("dry clean: %s", ", ".join(filenames))
        return
    remote.batch_delete(filenames)
    logger.info("Deleted %d expired file(s)", len(filenames))


def _persist_log(config: CdnFlowConfig, remote: QiniuRemote, plan: DeployPlan) -> None:
    if not config.log_file:
        return
    content = dumps(plan.log_records)
    if config.dry:
        logger.info("dry emit log %s\n%s", config.log_file, content)
        return
    remote.upload(config.log_file, content.encode("utf-8"))
    logger.info("Version log written with %d version(s)", len(plan.log_records))


def _cdn_phase(config: CdnFlowConfig, remote: QiniuRemote, plan: DeployPlan) -> list[str]:
    errors: list[str] = []
    operations = []
    if config.refresh:
        operations.append(("refresh", remote.refresh, plan.status.overwrite))
    if config.prefetch:
        operations.append(("prefetch", remote.prefetch, plan.status.upload))

    for name, call, records in operations:
        urls = [config.url_for(record.filename) for record in records]
        if not urls:
            continue
        if config.dry:
            logger.info("dry %s cdn:\n %s", name, "\n ".join(urls))
            continue
        try:
            call(urls)
        except Exception as exc:
            # CDN cache control never fails a deployment.
            logger.error("CDN %s failed: %s", name, exc)
            errors.append(f"{name}: {exc}")
        else:
            logger.info("CDN %s succeeded for %d url(s)", name, len(urls))
    return errors


async def deploy(
    config: CdnFlowConfig,
    *,
    console: Console | None = None,
    now: float | None = None,
    remote: QiniuRemote | None = None,
) -> DeployResult:
    config = prepare_config(config)
    remote = remote or build_remote(config)

    plan = await plan_deployment(config, remote, now=now)
    mismatches = _upload_phase(config, remote, plan, console=console)
    _clean_phase(config, remote, plan)
    _persist_log(config, remote, plan)

    if not config.dry:
        hashed = [local for local in plan.local_files.values() if local.hash != EXCLUDED_HASH]
        await replace_snapshot(config.state_db_path, hashed)
        await set_meta(config.state_db_path, LAST_DEPLOY_KEY, str(plan.timestamp))

    cdn_errors = _cdn_phase(config, remote, plan)

    return DeployResult(
        status=plan.status,
        log_records=plan.log_records,
        timestamp=plan.timestamp,
        dry=config.dry,
        hash_mismatches=mismatches,
        cdn_errors=cdn_errors,
    )
