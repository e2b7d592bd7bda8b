"""Progress rendering for build status events.

A ProgressReporter consumes a status event stream exactly once and renders
it with rich: one line per vertex transition in plain mode, a live table
of vertices on a terminal, or nothing in quiet mode.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.table import Table

from srcimage.builds.events import StatusEvent, Vertex
from srcimage.errors import RenderError
from srcimage.types import ProgressMode

logger = logging.getLogger(__name__)


def _duration(vertex: Vertex) -> str:
    if vertex.started is None or vertex.completed is None:
        return ""
    seconds = (vertex.completed - vertex.started).total_seconds()
    return f"{max(seconds, 0.0):.1f}s"


def _vertex_state(vertex: Vertex) -> str:
    if vertex.error:
        return "error"
    if vertex.cached:
        return "cached"
    if vertex.completed is not None:
        return "done"
    if vertex.started is not None:
        return "running"
    return "pending"


class ProgressReporter:
    """Renders one build's status event stream.

    A reporter streams once; a fresh instance is required per build.

    Args:
        console: Output sink (defaults to stderr).
        mode: Rendering mode; AUTO picks TTY on a terminal, PLAIN otherwise.
    """

    def __init__(
        self,
        console: Console | None = None,
        mode: ProgressMode = ProgressMode.AUTO,
    ) -> None:
        self.console = console or Console(stderr=True)
        if mode == ProgressMode.AUTO:
            mode = ProgressMode.TTY if self.console.is_terminal else ProgressMode.PLAIN
        self.mode = mode
        self._used = False
        self._vertexes: dict[str, Vertex] = {}
        self._states: dict[str, str] = {}

    @property
    def vertexes(self) -> dict[str, Vertex]:
        """Latest known state of every vertex seen so far."""
        return dict(self._vertexes)

    async def stream(self, events: AsyncIterable[StatusEvent]) -> None:
        """Consume and render events until the stream closes.

        Raises:
            RenderError: If the reporter was already used, rendering fails,
                or the stream ends abnormally.
            asyncio.CancelledError: If the surrounding scope is cancelled.
        """
        if self._used:
            raise RenderError("progress reporter can only stream once")
        self._used = True

        try:
            if self.mode == ProgressMode.TTY:
                await self._stream_live(events)
            else:
                async for event in events:
                    self._render_event(event)
        except (asyncio.CancelledError, RenderError):
            raise
        except Exception as e:
            raise RenderError(f"Failed to render build progress: {e}") from e

    async def _stream_live(self, events: AsyncIterable[StatusEvent]) -> None:
        with Live(
            self._table(), console=self.console, refresh_per_second=8
        ) as live:
            async for event in events:
                self._update(event)
                self._print_logs(event, live.console)
                live.update(self._table())

    def _render_event(self, event: StatusEvent) -> None:
        for vertex, state in self._update(event):
            if self.mode == ProgressMode.QUIET:
                continue
            name = escape(vertex.name or vertex.digest)
            if state == "running":
                self.console.print(f"[+] {name}", highlight=False)
            elif state == "cached":
                self.console.print(f"CACHED {name}", highlight=False)
            elif state == "done":
                self.console.print(f"DONE {name} {_duration(vertex)}", highlight=False)
            elif state == "error":
                self.console.print(
                    f"[red]ERROR {name}: {escape(vertex.error)}[/red]",
                    highlight=False,
                )
        if self.mode != ProgressMode.QUIET:
            self._print_logs(event, self.console)

    def _update(self, event: StatusEvent) -> list[tuple[Vertex, str]]:
        """Record vertex updates; return the vertexes whose state changed."""
        changed: list[tuple[Vertex, str]] = []
        for vertex in event.vertexes:
            self._vertexes[vertex.digest] = vertex
            state = _vertex_state(vertex)
            if state != self._states.get(vertex.digest):
                self._states[vertex.digest] = state
                changed.append((vertex, state))
        return changed

    def _print_logs(self, event: StatusEvent, console: Console) -> None:
        for log in event.logs:
            vertex = self._vertexes.get(log.vertex)
            prefix = escape(vertex.name) if vertex is not None else "#"
            for line in log.text().splitlines():
                console.print(f"{prefix} | {escape(line)}", highlight=False)
        for warning in event.warnings:
            console.print(
                f"[yellow]WARNING: {escape(warning.text())}[/yellow]",
                highlight=False,
            )

    def _table(self) -> Table:
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column("state", no_wrap=True)
        table.add_column("name")
        table.add_column("time", justify="right", no_wrap=True)
        styles = {
            "running": "[blue]RUN[/blue]",
            "cached": "[cyan]CACHED[/cyan]",
            "done": "[green]DONE[/green]",
            "error": "[red]ERROR[/red]",
            "pending": "[dim]WAIT[/dim]",
        }
        for digest, vertex in self._vertexes.items():
            table.add_row(
                styles[self._states[digest]],
                escape(vertex.name or digest),
                _duration(vertex),
            )
        return table


__all__ = ["ProgressReporter"]
