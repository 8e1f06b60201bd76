"""Progress reporting for lifecycle state changes."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, assert_never

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from adapt.state import Checking, Downloading, Error, Idle, LifecycleState, Loading, Ready

if TYPE_CHECKING:
    from rich.progress import TaskID


class LifecycleReporter:
    """Rich-based display of lifecycle states.

    Subscribe ``callback`` to ``LifecycleOrchestrator.state``. Renders a
    download bar on TTY stderr and falls back to log messages otherwise.
    """

    def __init__(self, console: Console, verbose: bool = False, quiet: bool = False) -> None:
        self._console = console
        self._verbose = verbose
        self._quiet = quiet
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._is_tty: bool = sys.stderr.isatty()
        self._logger: logging.Logger = logging.getLogger("adapt.progress")

    def callback(self, state: LifecycleState) -> None:
        """Handle a published lifecycle state."""
        if self._quiet:
            return

        match state:
            case Idle():
                self._stop()
                if self._verbose:
                    self._emit("Idle")
            case Checking():
                self._stop()
                self._emit("Checking device resources...")
            case Downloading(model_name=name, progress=progress):
                self._update_download(name, progress)
            case Loading(model_name=name):
                self._stop()
                self._emit(f"Loading {name}...")
            case Ready(model_name=name, model_id=model_id):
                self._stop()
                self._emit(f"{name} ready ({model_id})", style="green")
            case Error(message=message):
                self._stop()
                self._emit(f"Error: {message}", style="red", error=True)
            case _:
                assert_never(state)

    def _update_download(self, name: str, progress: float) -> None:
        if not self._is_tty:
            self._logger.info("Downloading %s: %d%%", name, int(progress * 100))
            return
        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TimeElapsedColumn(),
                console=self._console,
            )
            self._progress.start()
            self._task_id = self._progress.add_task(f"[cyan]Downloading {name}", total=1.0)
        if self._task_id is not None:
            self._progress.update(self._task_id, completed=progress)

    def _emit(self, message: str, style: str | None = None, error: bool = False) -> None:
        if self._is_tty:
            self._console.print(message, style=style, markup=False)
        elif error:
            self._logger.error("%s", message)
        else:
            self._logger.info("%s", message)

    def _stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    def finish(self) -> None:
        """Tear down any live display."""
        self._stop()
