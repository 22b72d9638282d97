from __future__ import annotations

import json
from typing import Any, Iterable

from cdnflow.errors import LogCorruptionError
from cdnflow.models import FileRecord, LogRecord, VersionMatch


class VersionLog:
    """Deployment history, index 0 being the most recent version."""

    def __init__(self, records: Iterable[LogRecord] | None = None) -> None:
        self._records: list[LogRecord] = []
        if records is not None:
            self.init(records)

    def __len__(self) -> int:
        return len(self._records)

    def init(self, records: Iterable[LogRecord]) -> None:
        # Persisted logs are not trusted to be ordered.
        self._records = sorted(records, key=lambda record: record.timestamp, reverse=True)

    def append(self, record: LogRecord) -> None:
        self._records.insert(0, record)

    def get_last_version(self) -> LogRecord | None:
        if not self._records:
            return None
        return self._records[0]

    def find_version(
        self,
        filename: str,
        hash: str | None = None,
        start_index: int = 0,
    ) -> VersionMatch | None:
        """Return the most recent version at or after ``start_index`` that touched ``filename``."""
        for index in range(start_index, len(self._records)):
            record = self._records[index]
            for entry in (*record.upload, *record.omit):
                if entry.filename != filename:
                    continue
                if hash and entry.hash != hash:
                    continue
                return VersionMatch(version_index=index, timestamp=record.timestamp)
        return None

    def get_first_expire_version_index(
        self,
        max_versions: int | None = None,
        deadline: int | None = None,
    ) -> int:
        """Index of the first expired version, or ``len(self)`` when none expire.

        With both bounds given a version expires only when it is older than
        ``deadline`` and beyond ``max_versions``. With a single bound, that bound
        decides alone.
        """
        deadline_defined = deadline is not None
        versions_defined = max_versions is not None
        for index, record in enumerate(self._records):
            time_expired = deadline_defined and record.timestamp < deadline
            version_expired = versions_defined and index > max_versions
            if (
                (time_expired and version_expired)
                or (not deadline_defined and version_expired)
                or (not versions_defined and time_expired)
            ):
                return index
        return len(self._records)

    def get_fresh_versions(
        self,
        max_versions: int | None = None,
        deadline: int | None = None,
    ) -> list[LogRecord]:
        return self._records[: self.get_first_expire_version_index(max_versions, deadline)]

    def get_versions(self, start: int | None = None, end: int | None = None) -> list[LogRecord]:
        return self._records[start:end]


def dumps(records: Iterable[LogRecord]) -> str:
    return json.dumps([record.to_dict() for record in records], indent=2)


def loads(text: str) -> list[LogRecord]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LogCorruptionError(f"Remote version log is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise LogCorruptionError(
            f"Remote version log must be a JSON array, got {type(payload).__name__}"
        )
    try:
        return [_record_from_dict(item) for item in payload]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise LogCorruptionError(f"Remote version log has an unexpected shape: {exc!r}") from exc


def _record_from_dict(item: dict[str, Any]) -> LogRecord:
    return LogRecord(
        timestamp=int(item["timestamp"]),
        upload=[_file_from_dict(entry) for entry in item.get("upload") or []],
        omit=[_file_from_dict(entry) for entry in item.get("omit") or []],
    )


def _file_from_dict(entry: dict[str, Any]) -> FileRecord:
    return FileRecord(filename=str(entry["filename"]), hash=str(entry["hash"]))
