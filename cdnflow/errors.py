from __future__ import annotations


class CdnFlowError(RuntimeError):
    """Base class for errors that abort a cdnflow run."""


class ConfigError(CdnFlowError, ValueError):
    pass


class TransportError(CdnFlowError):
    """A remote call failed or answered with a non-success status."""

    def __init__(self, operation: str, detail: str, *, status_code: int | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        prefix = f"{operation} failed"
        if status_code is not None:
            prefix += f" ({status_code})"
        super().__init__(f"{prefix}: {detail}")


class LogCorruptionError(CdnFlowError):
    """The persisted version log could not be parsed."""
