"""Progress listeners observing repository completion."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

if TYPE_CHECKING:
    from borgreport.domain.models import Report, RepositoryReport


class ProgressListener(Protocol):
    """Receives notifications as the pipeline works through repositories."""

    def on_start(self, total: int) -> None: ...

    def on_repository_complete(self, report: RepositoryReport) -> None: ...

    def on_complete(self, report: Report) -> None: ...


class NullProgressListener:
    """Listener that ignores every notification."""

    def on_start(self, total: int) -> None:  # pragma: no cover - no-op
        return

    def on_repository_complete(self, report: RepositoryReport) -> None:  # pragma: no cover
        return

    def on_complete(self, report: Report) -> None:  # pragma: no cover - no-op
        return


class ConsoleProgressListener:
    """Rich progress bar on stderr, one tick per finished repository.

    Nothing is drawn when the console is not attached to a terminal, so
    redirected runs (cron, systemd timers) stay quiet.
    """

    def __init__(self, console: Console | None = None, *, enabled: bool = True) -> None:
        self.console = console or Console(stderr=True)
        self.enabled = enabled
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None

    @property
    def active(self) -> bool:
        return self.enabled and self.console.is_terminal

    def on_start(self, total: int) -> None:
        if not self.active or self._progress is not None:
            return
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        self._progress.start()
        self._task_id = self._progress.add_task("Querying repositories", total=max(total, 1))

    def on_repository_complete(self, report: RepositoryReport) -> None:
        if self._progress is None or self._task_id is None:
            return
        self._progress.update(
            self._task_id, advance=1, description=f"Processed {escape(report.name)}"
        )
        if not report.health.reachable:
            self._progress.log(f"[red]{escape(report.name)}: unreachable[/red]", markup=True)

    def on_complete(self, report: Report) -> None:
        self.close()

    def close(self) -> None:
        if self._progress is None:
            return
        self._progress.stop()
        self._progress = None
        self._task_id = None


__all__ = ["ConsoleProgressListener", "NullProgressListener", "ProgressListener"]
