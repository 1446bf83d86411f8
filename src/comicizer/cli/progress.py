"""Rendering of pipeline progress for the CLI."""

from __future__ import annotations

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

from comicizer.types import ComicPage, ProcessingState, ProcessingStatus

_STATUS_LABELS = {
    ProcessingStatus.IDLE: "Waiting",
    ProcessingStatus.ANALYZING: "Analyzing paper",
    ProcessingStatus.PLANNING: "Planning pages",
    ProcessingStatus.GENERATING_IMAGES: "Drawing pages",
    ProcessingStatus.COMPLETE: "Complete",
    ProcessingStatus.ERROR: "Failed",
}


def describe_state(state: ProcessingState) -> str:
    """One-line description of a state snapshot."""
    label = _STATUS_LABELS.get(state.status, state.status.value)
    if state.status is ProcessingStatus.GENERATING_IMAGES and state.total_steps:
        label = f"{label} ({state.current_step}/{state.total_steps})"
    if state.current_step_description and state.status not in (
        ProcessingStatus.COMPLETE,
        ProcessingStatus.ERROR,
    ):
        label = f"{label}: {state.current_step_description}"
    return label


class ProgressRenderer:
    """Rich progress bar driven by ``ProcessingState`` snapshots.

    Disabled renderers ignore every call, so callers can pass the
    callbacks unconditionally.
    """

    def __init__(self, console: Console, enabled: bool = True) -> None:
        self.console = console
        self.enabled = enabled
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def __enter__(self) -> ProgressRenderer:
        if self.enabled:
            self._progress = Progress(
                TextColumn("[cyan]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                console=self.console,
                transient=False,
            )
            self._progress.start()
            self._task = self._progress.add_task("Starting", total=100)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

    def on_progress(self, state: ProcessingState) -> None:
        if self._progress is None or self._task is None:
            return
        self._progress.update(
            self._task, completed=state.progress, description=describe_state(state)
        )

    def on_page(self, page: ComicPage) -> None:
        if self._progress is None:
            return
        self._progress.console.print(
            f"[green]✓[/green] Page {page.page_number}: {page.description[:60]}"
        )
