from __future__ import annotations

from dataclasses import dataclass, field


EXCLUDED_HASH = "*EXCLUDED*"


@dataclass(slots=True, frozen=True)
class FileRecord:
    filename: str
    hash: str

    def to_dict(self) -> dict[str, str]:
        return {"filename": self.filename, "hash": self.hash}


@dataclass(slots=True)
class LogRecord:
    timestamp: int
    upload: list[FileRecord] = field(default_factory=list)
    omit: list[FileRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "upload": [record.to_dict() for record in self.upload],
            "omit": [record.to_dict() for record in self.omit],
        }


@dataclass(slots=True, frozen=True)
class VersionMatch:
    version_index: int
    timestamp: int


@dataclass(slots=True, frozen=True)
class RetentionPolicy:
    versions: int | None = None
    time: int | None = None


@dataclass(slots=True, frozen=True)
class LocalFile:
    path: str
    filename: str
    size: int
    mtime_ns: int
    hash: str
    ctime_ns: int = 0
    inode: int = 0

    def same_stat(self, other: LocalFile) -> bool:
        """True when size, mtime, ctime and inode all match."""
        return (
            self.size == other.size
            and self.mtime_ns == other.mtime_ns
            and self.ctime_ns == other.ctime_ns
            and self.inode == other.inode
        )

    @property
    def record(self) -> FileRecord:
        return FileRecord(filename=self.filename, hash=self.hash)


@dataclass(slots=True, frozen=True)
class DiffResult:
    excluded: tuple[FileRecord, ...] = ()
    omit: tuple[FileRecord, ...] = ()
    upload: tuple[FileRecord, ...] = ()
    overwrite: tuple[FileRecord, ...] = ()


@dataclass(slots=True, frozen=True)
class UploadStatus:
    remote: tuple[FileRecord, ...] = ()
    excluded: tuple[FileRecord, ...] = ()
    overwrite: tuple[FileRecord, ...] = ()
    omit: tuple[FileRecord, ...] = ()
    upload: tuple[FileRecord, ...] = ()
    clean: tuple[FileRecord, ...] = ()

    def buckets(self) -> list[tuple[str, tuple[FileRecord, ...]]]:
        return [
            ("remote", self.remote),
            ("exclude", self.excluded),
            ("overwrite", self.overwrite),
            ("omit", self.omit),
            ("upload", self.upload),
            ("clean", self.clean),
        ]
