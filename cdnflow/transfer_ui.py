from __future__ import annotations

import threading

from rich.console import Console
from rich.filesize import decimal
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


class UploadProgressUI:
    """Overall files-done bar for an upload phase, with one log line per finished file.

    Each PUT sends the whole object in one request, so the only progress a file
    reports is its state. Safe to drive from worker threads.
    """

    def __init__(self, total_files: int, console: Console | None = None, *, transient: bool = False) -> None:
        self._lock = threading.Lock()
        self._active: list[str] = []
        self.done = 0
        self.failed = 0
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]PUT"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("{task.fields[current]}"),
            console=console,
            transient=transient,
            expand=True,
        )
        self._task: TaskID = self._progress.add_task("upload", total=total_files, current="")

    def __enter__(self) -> UploadProgressUI:
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.__exit__(exc_type, exc, tb)

    def _refresh_current(self) -> None:
        self._progress.update(self._task, current=", ".join(self._active))

    def start(self, path: str) -> None:
        with self._lock:
            self._active.append(path)
            self._refresh_current()

    def complete(self, path: str, size: int) -> None:
        with self._lock:
            self._active.remove(path)
            self.done += 1
            self._progress.advance(self._task)
            self._refresh_current()
            self._progress.console.log(f"[green]done[/green] {escape(path)} ({decimal(size)})")

    def fail(self, path: str, message: str = "failed") -> None:
        with self._lock:
            if path in self._active:
                self._active.remove(path)
            self.failed += 1
            self._refresh_current()
            self._progress.console.log(f"[red]{escape(message)}[/red] {escape(path)}")
