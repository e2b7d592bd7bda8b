"""Tests for builds/progress.py module."""

import asyncio
import base64
import io

import pytest
from rich.console import Console

from srcimage.builds.events import StatusChannel, StatusEvent
from srcimage.builds.progress import ProgressReporter
from srcimage.errors import RenderError
from srcimage.types import ProgressMode

STARTED = "2024-05-01T10:00:00Z"
COMPLETED = "2024-05-01T10:00:02.5Z"


def _console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=200, force_terminal=False), buffer


def _vertex_event(**fields) -> StatusEvent:
    vertex = {"digest": "sha256:one", "name": "[1/2] RUN make"}
    vertex.update(fields)
    return StatusEvent.model_validate({"vertexes": [vertex]})


async def _closed_channel(*events: StatusEvent) -> StatusChannel:
    channel = StatusChannel(maxsize=len(events) + 1)
    for event in events:
        await channel.send(event)
    await channel.close()
    return channel


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_auto_mode_without_terminal(self):
        """AUTO should render plain output when not on a terminal."""
        console, _ = _console()
        assert ProgressReporter(console=console).mode == ProgressMode.PLAIN

    @pytest.mark.asyncio
    async def test_plain_transitions(self):
        """Should print one line per vertex state change."""
        console, buffer = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.PLAIN)
        channel = await _closed_channel(
            _vertex_event(started=STARTED),
            _vertex_event(started=STARTED),
            _vertex_event(started=STARTED, completed=COMPLETED),
        )

        await reporter.stream(channel)

        output = buffer.getvalue()
        assert output.count("[+] [1/2] RUN make") == 1
        assert "DONE [1/2] RUN make 2.5s" in output

    @pytest.mark.asyncio
    async def test_plain_cached_and_error(self):
        """Should show cached and failed vertexes."""
        console, buffer = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.PLAIN)
        channel = await _closed_channel(
            _vertex_event(cached=True, started=STARTED, completed=STARTED),
            StatusEvent.model_validate(
                {
                    "vertexes": [
                        {"digest": "sha256:two", "name": "RUN x", "error": "boom"}
                    ]
                }
            ),
        )

        await reporter.stream(channel)

        output = buffer.getvalue()
        assert "CACHED [1/2] RUN make" in output
        assert "ERROR RUN x: boom" in output

    @pytest.mark.asyncio
    async def test_plain_logs(self):
        """Should print vertex log lines with the vertex name."""
        console, buffer = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.PLAIN)
        log = StatusEvent.model_validate(
            {
                "logs": [
                    {
                        "vertex": "sha256:one",
                        "data": base64.b64encode(b"compiling\n").decode(),
                    }
                ]
            }
        )
        channel = await _closed_channel(_vertex_event(started=STARTED), log)

        await reporter.stream(channel)

        assert "[1/2] RUN make | compiling" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_quiet(self):
        """QUIET should consume the stream without output."""
        console, buffer = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.QUIET)
        channel = await _closed_channel(_vertex_event(started=STARTED))

        await reporter.stream(channel)

        assert buffer.getvalue() == ""
        assert "sha256:one" in reporter.vertexes

    @pytest.mark.asyncio
    async def test_tty(self):
        """TTY should render a table of vertexes."""
        console, buffer = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.TTY)
        channel = await _closed_channel(
            _vertex_event(started=STARTED, completed=COMPLETED)
        )

        await reporter.stream(channel)

        assert "[1/2] RUN make" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_streams_once(self):
        """Should refuse to stream a second time."""
        console, _ = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.QUIET)
        await reporter.stream(await _closed_channel())

        with pytest.raises(RenderError):
            await reporter.stream(await _closed_channel())

    @pytest.mark.asyncio
    async def test_abnormal_stream_end(self):
        """Should wrap a failing event stream in RenderError."""
        console, _ = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.PLAIN)

        async def broken():
            yield _vertex_event(started=STARTED)
            raise ConnectionResetError("stream lost")

        with pytest.raises(RenderError) as exc_info:
            await reporter.stream(broken())
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Should stop promptly when cancelled instead of waiting for events."""
        console, _ = _console()
        reporter = ProgressReporter(console=console, mode=ProgressMode.PLAIN)
        channel = StatusChannel()

        task = asyncio.create_task(reporter.stream(channel))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
