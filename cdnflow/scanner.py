from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable

from cdnflow.config import CONFIG_FILENAME, DEFAULT_WORKERS, STATE_DB_FILENAME
from cdnflow.etag import etag_file
from cdnflow.filters import ExcludePredicate
from cdnflow.models import EXCLUDED_HASH, LocalFile
from cdnflow.pool import run_jobs

logger = logging.getLogger(__name__)

EXCLUDED_FILENAMES = {CONFIG_FILENAME, STATE_DB_FILENAME}


def _discover_candidates(root: Path) -> list[LocalFile]:
    """Stat every regular file under ``root``; the returned records carry no hash yet."""
    candidates: list[LocalFile] = []
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file():
            continue
        if file_path.name in EXCLUDED_FILENAMES:
            continue
        stat = file_path.stat()
        candidates.append(
            LocalFile(
                path=str(file_path),
                filename=file_path.relative_to(root).as_posix(),
                size=stat.st_size,
                mtime_ns=stat.st_mtime_ns,
                hash="",
                ctime_ns=stat.st_ctime_ns,
                inode=stat.st_ino,
            )
        )
    return candidates


def discover_files(root: Path) -> list[str]:
    return [candidate.filename for candidate in _discover_candidates(root.resolve())]


def _record_from_candidate(
    candidate: LocalFile,
    previous_records: dict[str, LocalFile],
    *,
    on_hash_chunk: Callable[[int], None] | None = None,
) -> LocalFile:
    previous = previous_records.get(candidate.filename)
    # ctime and inode catch rewrites that keep the size and restore the mtime.
    if previous is not None and previous.same_stat(candidate):
        file_hash = previous.hash
    else:
        file_hash = etag_file(Path(candidate.path), on_chunk=on_hash_chunk)
    return replace(candidate, hash=file_hash)


def scan_local_files(
    root: Path,
    *,
    exclude: ExcludePredicate | None = None,
    previous_records: dict[str, LocalFile] | None = None,
    max_workers: int = DEFAULT_WORKERS,
) -> list[LocalFile]:
    """Hash every file under ``root``, in discovery order.

    Excluded files are never read; they carry the excluded sentinel instead of a hash.
    """
    root = root.resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Output directory does not exist: {root}")
    previous_records = previous_records or {}
    candidates = _discover_candidates(root)

    def make_job(candidate: LocalFile):
        if exclude is not None and exclude(candidate.filename):
            record = replace(candidate, hash=EXCLUDED_HASH)
            return candidate.filename, lambda: record
        return candidate.filename, lambda: _record_from_candidate(candidate, previous_records)

    records = run_jobs(
        [make_job(candidate) for candidate in candidates],
        max_workers=max_workers,
        thread_name_prefix="cdnflow-hash",
    )
    logger.debug("Scanned %d file(s) under %s", len(records), root)
    return records
