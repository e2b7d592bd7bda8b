"""Status events streamed by the build backend.

This module handles:
- Pydantic models for BuildKit solve status (rawjson progress)
- The bounded channel carrying events from the solve to the reporter
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

_FRACTION = re.compile(r"(\.\d{6})\d+")


def _truncate_nanoseconds(value: Any) -> Any:
    # BuildKit emits RFC 3339 timestamps with nanosecond precision
    if isinstance(value, str):
        return _FRACTION.sub(r"\1", value, count=1)
    return value


Timestamp = Annotated[datetime | None, BeforeValidator(_truncate_nanoseconds)]


class Vertex(BaseModel):
    """A build graph vertex and its lifecycle timestamps."""

    model_config = ConfigDict(extra="ignore")

    digest: str
    inputs: list[str] = Field(default_factory=list)
    name: str = ""
    started: Timestamp = None
    completed: Timestamp = None
    cached: bool = False
    error: str = ""


class VertexStatus(BaseModel):
    """Progress of a sub-task of a vertex (e.g. a layer transfer)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    vertex: str
    name: str = ""
    total: int = 0
    current: int = 0
    timestamp: Timestamp = None
    started: Timestamp = None
    completed: Timestamp = None


class VertexLog(BaseModel):
    """Output produced while executing a vertex."""

    model_config = ConfigDict(extra="ignore")

    vertex: str
    stream: int = 1
    data: str = ""
    timestamp: Timestamp = None

    def text(self) -> str:
        """Return the log payload as text."""
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError):
            return self.data
        return raw.decode("utf-8", errors="replace")


class VertexWarning(BaseModel):
    """A warning raised by the frontend for a vertex."""

    model_config = ConfigDict(extra="ignore")

    vertex: str = ""
    level: int = 0
    short: str = ""

    def text(self) -> str:
        """Return the short warning message as text."""
        try:
            return base64.b64decode(self.short, validate=True).decode(
                "utf-8", errors="replace"
            )
        except (binascii.Error, ValueError):
            return self.short


class StatusEvent(BaseModel):
    """One progress update from the backend."""

    model_config = ConfigDict(extra="ignore")

    vertexes: list[Vertex] = Field(default_factory=list)
    statuses: list[VertexStatus] = Field(default_factory=list)
    logs: list[VertexLog] = Field(default_factory=list)
    warnings: list[VertexWarning] = Field(default_factory=list)

    @classmethod
    def from_json_line(cls, line: str) -> StatusEvent:
        """Parse one line of `buildctl --progress=rawjson` output.

        Raises:
            pydantic.ValidationError: If the line is not a status event.
        """
        return cls.model_validate_json(line)

    def vertex_errors(self) -> list[str]:
        """Return the error messages of failed vertexes in this event."""
        return [f"{v.name}: {v.error}" for v in self.vertexes if v.error]


class ChannelClosedError(Exception):
    """Raised when sending on a closed channel."""


_CLOSED = object()


class StatusChannel:
    """Bounded, single-consumer channel of status events.

    The producer sends events and closes the channel when the solve ends;
    the consumer iterates it exactly once. Sending blocks while the channel
    is full.

    Args:
        maxsize: Channel capacity.
    """

    def __init__(self, maxsize: int = 64) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._consumed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: StatusEvent) -> None:
        if self._closed:
            raise ChannelClosedError("send on closed status channel")
        await self._queue.put(event)

    async def close(self) -> None:
        """Close the channel; the consumer stops after pending events."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    def __aiter__(self) -> AsyncIterator[StatusEvent]:
        if self._consumed:
            raise RuntimeError("status channel can only be consumed once")
        self._consumed = True
        return self._iterate()

    async def drain(self) -> int:
        """Discard events until the channel closes.

        Returns:
            Number of events discarded.
        """
        self._consumed = True
        count = 0
        while not self._finished:
            if await self._queue.get() is _CLOSED:
                self._finished = True
            else:
                count += 1
        return count

    async def _iterate(self) -> AsyncIterator[StatusEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                self._finished = True
                return
            yield item  # type: ignore[misc]


__all__ = [
    "ChannelClosedError",
    "StatusChannel",
    "StatusEvent",
    "Vertex",
    "VertexLog",
    "VertexStatus",
    "VertexWarning",
]
