"""Build orchestration.

This module runs one solve and its progress reporter as two concurrent
tasks in a single cancellation scope:
- The solve task submits the SolveConfiguration and streams status events
- The progress task renders the event stream

The first task to fail cancels the other. The orchestrator returns only
after both tasks have finished, and raises the first error observed.
Progress rendering failures are logged and tolerated unless the
configuration asks for them to be fatal.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from srcimage.builds.backend import SolveBackend
from srcimage.builds.events import StatusChannel
from srcimage.builds.progress import ProgressReporter
from srcimage.builds.solve import (
    OrchestratorConfig,
    SolveConfiguration,
    new_solve_configuration,
)
from srcimage.errors import BuildError, RenderError, SrcImageError

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Outcome of a successful build.

    Attributes:
        image_tag: Image reference that was built and pushed.
        solve_config: Configuration submitted to the backend.
        render_error: Progress rendering failure that was tolerated, if any.
    """

    image_tag: str
    solve_config: SolveConfiguration
    render_error: RenderError | None = None

    @property
    def degraded(self) -> bool:
        """True when the build succeeded without complete progress output."""
        return self.render_error is not None


def _first_error(group: BaseExceptionGroup) -> BaseException:
    """Return the first leaf exception of a (possibly nested) group."""
    first = group.exceptions[0]
    while isinstance(first, BaseExceptionGroup):
        first = first.exceptions[0]
    return first


class BuildOrchestrator:
    """Coordinates the solve and progress tasks of one build.

    Args:
        config: Build variant selection and failure policy.
    """

    def __init__(self, config: OrchestratorConfig | None = None) -> None:
        self.config = config or OrchestratorConfig()

    def solve_configuration(
        self, working_tree: Path, image_tag: str, dockerfile: Path | str
    ) -> SolveConfiguration:
        """Construct the solve configuration for a build of working_tree."""
        return new_solve_configuration(
            Path(working_tree), image_tag, Path(dockerfile), self.config
        )

    async def run_build(
        self,
        working_tree: Path,
        image_tag: str,
        dockerfile: Path | str,
        backend: SolveBackend,
        reporter: ProgressReporter | None = None,
    ) -> BuildResult:
        """Build and push image_tag from working_tree.

        Args:
            working_tree: Build context root.
            image_tag: Destination image reference.
            dockerfile: Build-instruction file, relative to working_tree.
            backend: Backend client running the solve.
            reporter: Fresh progress reporter (defaults to stderr output).

        Returns:
            BuildResult on success.

        Raises:
            BuildError: If the solve fails.
            RenderError: If rendering fails and fail_on_render_error is set.
            asyncio.CancelledError: If the caller's scope is cancelled.
        """
        solve_config = self.solve_configuration(working_tree, image_tag, dockerfile)
        channel = StatusChannel(self.config.channel_size)
        if reporter is None:
            reporter = ProgressReporter()
        render_errors: list[RenderError] = []

        async def progress() -> None:
            try:
                await reporter.stream(channel)
            except RenderError as e:
                if self.config.fail_on_render_error:
                    raise
                logger.warning("Progress rendering failed, build continues: %s", e)
                render_errors.append(e)
                # Keep consuming so the solve never blocks on a full channel
                await channel.drain()

        logger.info("Building %s from %s", image_tag, working_tree)
        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(backend.solve(solve_config, channel), name="solve")
                tg.create_task(progress(), name="progress")
        except BaseExceptionGroup as group:
            error = _first_error(group)
            if isinstance(error, SrcImageError):
                logger.error("Build of %s failed: %s", image_tag, error)
                raise error
            if not isinstance(error, Exception):
                raise error
            logger.error("Build of %s failed: %s", image_tag, error)
            raise BuildError(f"Solve failed: {error}") from error

        logger.info("Built and pushed %s", image_tag)
        return BuildResult(
            image_tag=image_tag,
            solve_config=solve_config,
            render_error=render_errors[0] if render_errors else None,
        )


__all__ = ["BuildOrchestrator", "BuildResult"]
