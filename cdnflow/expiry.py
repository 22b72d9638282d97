"""Decide which previously uploaded files no retained version still references."""

from __future__ import annotations

import logging

from cdnflow.models import FileRecord, LogRecord, RetentionPolicy
from cdnflow.version_log import VersionLog

logger = logging.getLogger(__name__)


def compute_deadline(log: VersionLog, policy: RetentionPolicy) -> int | None:
    if policy.time is None:
        return None
    last = log.get_last_version()
    if last is None:
        return None
    return last.timestamp - policy.time


def first_expire_index(log: VersionLog, policy: RetentionPolicy) -> int:
    return log.get_first_expire_version_index(policy.versions, compute_deadline(log, policy))


def compute_clean(log: VersionLog, policy: RetentionPolicy) -> list[FileRecord]:
    expire_index = first_expire_index(log, policy)
    expired = log.get_versions(expire_index)
    if not expired:
        return []

    clean: list[FileRecord] = []
    seen: set[str] = set()
    last_position = len(expired) - 1
    for position, record in enumerate(expired):
        candidates = list(record.upload)
        # The oldest expired version may hold the only reference to files uploaded
        # by versions that earlier runs already truncated from the log.
        if position == last_position:
            candidates.extend(record.omit)

        for candidate in candidates:
            if candidate.filename in seen:
                continue
            match = log.find_version(candidate.filename)
            if match is None or match.version_index < expire_index:
                continue
            seen.add(candidate.filename)
            clean.append(candidate)

    logger.debug(
        "Expiry boundary at version %d of %d: %d file(s) to clean",
        expire_index,
        len(log),
        len(clean),
    )
    return clean


def retained_records(log: VersionLog, policy: RetentionPolicy | None) -> list[LogRecord]:
    if policy is None:
        return log.get_versions()
    return log.get_fresh_versions(policy.versions, compute_deadline(log, policy))
