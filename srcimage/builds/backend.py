"""BuildKit backend client.

This module handles:
- Verifying the backend is reachable before a build starts
- Running `buildctl build` as a subprocess
- Streaming its rawjson progress into a StatusChannel
- Terminating the solve promptly on cancellation or a streaming failure

See compose_buildctl_command() for how a SolveConfiguration maps to the
buildctl command line.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING

from pydantic import ValidationError

from srcimage.builds.events import StatusChannel, StatusEvent
from srcimage.builds.solve import SolveConfiguration, compose_buildctl_command
from srcimage.errors import BackendInitError, BuildError, SrcImageError

if TYPE_CHECKING:
    from srcimage.config import Settings

logger = logging.getLogger(__name__)

# Seconds to wait for buildctl to exit after SIGTERM before killing it
TERMINATE_TIMEOUT = 10.0

# Maximum length of a single progress line (bytes)
STREAM_LIMIT = 16 * 1024 * 1024

# Number of non-JSON stderr lines kept for diagnostics
DIAGNOSTIC_TAIL = 20


class SolveBackend(ABC):
    """A build backend able to run one solve."""

    @abstractmethod
    async def solve(
        self, solve_config: SolveConfiguration, channel: StatusChannel
    ) -> None:
        """Run a solve, sending status events into channel.

        Implementations close the channel when the solve terminates on its
        own and raise BuildError on failure.
        """


class BuildkitClient(SolveBackend):
    """Client driving a buildkitd daemon through buildctl.

    Args:
        buildctl: Absolute path of the buildctl executable.
        addr: buildkitd address (None = buildctl default).
    """

    def __init__(self, buildctl: str, addr: str | None = None) -> None:
        self.buildctl = buildctl
        self.addr = addr

    @classmethod
    def connect(
        cls,
        addr: str | None = None,
        buildctl: str = "buildctl",
        probe_timeout: float = 30,
    ) -> BuildkitClient:
        """Create a client after checking the daemon answers.

        Args:
            addr: buildkitd address.
            buildctl: buildctl executable name or path.
            probe_timeout: Seconds allowed for the probe.

        Returns:
            Connected BuildkitClient.

        Raises:
            BackendInitError: If buildctl is missing or the daemon is
                unreachable.
        """
        path = shutil.which(buildctl)
        if path is None:
            raise BackendInitError(f"buildctl executable not found: {buildctl}")

        cmd = [path]
        if addr:
            cmd.extend(["--addr", addr])
        cmd.extend(["debug", "workers"])

        try:
            subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=probe_timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise BackendInitError(
                f"buildkitd did not answer within {probe_timeout}s"
            ) from e
        except subprocess.CalledProcessError as e:
            raise BackendInitError(
                f"buildkitd unavailable: {(e.stderr or '').strip() or e}"
            ) from e
        except OSError as e:
            raise BackendInitError(f"Failed to run buildctl: {e}") from e

        logger.info("Connected to buildkitd at %s", addr or "(default address)")
        return cls(path, addr)

    @classmethod
    def from_settings(cls, settings: Settings) -> BuildkitClient:
        """Connect using application settings."""
        return cls.connect(
            addr=settings.buildkit_addr,
            buildctl=settings.buildctl_path,
            probe_timeout=settings.backend_probe_timeout,
        )

    async def solve(
        self, solve_config: SolveConfiguration, channel: StatusChannel
    ) -> None:
        cmd = compose_buildctl_command(solve_config, self.addr, self.buildctl)
        logger.debug("Executing solve: %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise BuildError(f"Failed to start buildctl: {e}") from e

        vertex_errors: list[str] = []
        tail: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL)

        try:
            if proc.stderr is None:
                raise BuildError("buildctl started without a stderr pipe")
            async for raw in proc.stderr:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                event = _parse_event(line)
                if event is None:
                    logger.debug("buildctl: %s", line)
                    tail.append(line)
                    continue
                vertex_errors.extend(event.vertex_errors())
                await channel.send(event)
            returncode = await proc.wait()
        except (asyncio.CancelledError, SrcImageError):
            await _terminate(proc)
            raise
        except Exception as e:
            await _terminate(proc)
            raise BuildError(f"Failed to read buildctl progress: {e}") from e

        await channel.close()

        if returncode != 0:
            details = [*vertex_errors, *tail]
            message = f"buildctl exited with code {returncode}"
            if details:
                message = f"{message}: {details[0] if vertex_errors else details[-1]}"
            raise BuildError(
                message,
                diagnostics="\n".join(details),
                exit_code=returncode,
            )


def _parse_event(line: str) -> StatusEvent | None:
    if not line.startswith("{"):
        return None
    try:
        return StatusEvent.from_json_line(line)
    except ValidationError:
        return None


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Stop a running buildctl, escalating to SIGKILL."""
    if proc.returncode is not None:
        return
    logger.warning("Stopping buildctl (pid %d)", proc.pid)
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=TERMINATE_TIMEOUT)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()


__all__ = [
    "BuildkitClient",
    "SolveBackend",
    "TERMINATE_TIMEOUT",
]
