from __future__ import annotations

from typing import Iterable

from cdnflow.filters import ExcludePredicate, normalize_filename
from cdnflow.models import EXCLUDED_HASH, DiffResult, FileRecord, LogRecord


def classify(
    remote_files: Iterable[FileRecord],
    local_files: Iterable[FileRecord],
    exclude: ExcludePredicate | None = None,
) -> DiffResult:
    """Partition local files into excluded, omit, upload and overwrite buckets.

    Every local file lands in exactly one bucket, in local enumeration order.
    Remote names are expected to be prefix-stripped already.
    """
    remote_map = {normalize_filename(record.filename): record.hash for record in remote_files}

    excluded: list[FileRecord] = []
    omit: list[FileRecord] = []
    upload: list[FileRecord] = []
    overwrite: list[FileRecord] = []

    for local in local_files:
        filename = normalize_filename(local.filename)
        if exclude is not None and exclude(filename):
            excluded.append(FileRecord(filename=filename, hash=EXCLUDED_HASH))
            continue

        record = FileRecord(filename=filename, hash=local.hash)
        remote_hash = remote_map.get(filename)
        if remote_hash is None:
            upload.append(record)
        elif remote_hash == local.hash:
            omit.append(record)
        else:
            overwrite.append(record)

    return DiffResult(
        excluded=tuple(excluded),
        omit=tuple(omit),
        upload=tuple(upload),
        overwrite=tuple(overwrite),
    )


def to_log_record(diff: DiffResult, timestamp: int) -> LogRecord:
    return LogRecord(
        timestamp=timestamp,
        upload=[*diff.upload, *diff.overwrite],
        omit=list(diff.omit),
    )
