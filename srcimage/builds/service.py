"""Build service module.

This module provides the high-level build API:
- build_from_source(): acquire source, derive the tag, run the build

Steps run in order and the first failure ends the build: source
acquisition, tag resolution, backend connection, then the concurrent
solve and progress tasks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from srcimage.builds.backend import BuildkitClient, SolveBackend
from srcimage.builds.orchestrator import BuildOrchestrator, BuildResult
from srcimage.builds.progress import ProgressReporter
from srcimage.builds.solve import OrchestratorConfig, SolveConfiguration
from srcimage.builds.tag import resolve_tag
from srcimage.config import get_settings
from srcimage.errors import BuildError
from srcimage.source.acquire import acquire_source
from srcimage.source.store import LocalWorkingTreeStore, WorkingTreeStore

if TYPE_CHECKING:
    from srcimage.config import Settings
    from srcimage.errors import RenderError
    from srcimage.request import BuildRequest

logger = logging.getLogger(__name__)

BackendFactory = Callable[["Settings"], SolveBackend]


@dataclass
class BuildOutcome:
    """Result of a one-shot build.

    Attributes:
        image_tag: Image reference built (and pushed unless dry_run).
        commit: Full hash of the built commit.
        working_tree: Cached working tree used as build context.
        cache_hit: True if the working tree was reused from the cache.
        solve_config: Configuration submitted (or prepared) for the solve.
        render_error: Tolerated progress rendering failure, if any.
        dry_run: True if the backend was never invoked.
    """

    image_tag: str
    commit: str
    working_tree: Path
    cache_hit: bool
    solve_config: SolveConfiguration
    render_error: RenderError | None = None
    dry_run: bool = False


async def _run_with_timeout(
    orchestrator: BuildOrchestrator,
    working_tree: Path,
    image_tag: str,
    dockerfile: str,
    backend: SolveBackend,
    reporter: ProgressReporter | None,
    timeout: float | None,
) -> BuildResult:
    async with asyncio.timeout(timeout):
        return await orchestrator.run_build(
            working_tree, image_tag, dockerfile, backend, reporter=reporter
        )


def build_from_source(
    request: BuildRequest,
    settings: Settings | None = None,
    store: WorkingTreeStore | None = None,
    backend_factory: BackendFactory | None = None,
    reporter: ProgressReporter | None = None,
    dockerfile: str | None = None,
    timeout: float | None = None,
    dry_run: bool = False,
) -> BuildOutcome:
    """Build and push an image for a source repository.

    Args:
        request: Validated build request.
        settings: Application settings.
        store: Working-tree cache store (defaults to settings.cache_dir).
        backend_factory: Creates the backend client; called only after
            the source is acquired and the tag resolved.
        reporter: Progress reporter for this build.
        dockerfile: Build-instruction file (defaults to settings.dockerfile).
        timeout: Seconds allowed for the solve (None = no limit).
        dry_run: Stop after preparing the solve configuration.

    Returns:
        BuildOutcome describing the built image.

    Raises:
        FilesystemError: If the cache directory cannot be created.
        CloneError: If the source cannot be cloned.
        ReferenceResolutionError: If head cannot be resolved.
        BackendInitError: If the backend is unavailable.
        BuildError: If the solve fails.
        RenderError: If rendering fails and render errors are fatal.
        TimeoutError: If the solve exceeds timeout.
    """
    if settings is None:
        settings = get_settings()
    if store is None:
        store = LocalWorkingTreeStore(settings.cache_dir)
    if dockerfile is None:
        dockerfile = settings.dockerfile

    source = acquire_source(
        store,
        request.push_location,
        request.source_location,
        request.source_ref,
        request.credential.get_secret_value(),
        username=settings.git_username,
    )
    image_tag = resolve_tag(request.push_location, source.commit)
    logger.info("Image tag: %s", image_tag)

    orchestrator = BuildOrchestrator(OrchestratorConfig.from_settings(settings))
    solve_config = orchestrator.solve_configuration(
        source.working_tree, image_tag, dockerfile
    )
    outcome = BuildOutcome(
        image_tag=image_tag,
        commit=source.commit,
        working_tree=source.working_tree,
        cache_hit=source.cache_hit,
        solve_config=solve_config,
        dry_run=dry_run,
    )
    if dry_run:
        logger.info("Dry run, skipping build of %s", image_tag)
        return outcome

    instructions = Path(dockerfile)
    if not instructions.is_absolute():
        instructions = source.working_tree / instructions
    if not instructions.is_file():
        raise BuildError(f"Build-instruction file not found: {instructions}")

    if backend_factory is None:
        backend_factory = BuildkitClient.from_settings
    backend = backend_factory(settings)

    result = asyncio.run(
        _run_with_timeout(
            orchestrator,
            source.working_tree,
            image_tag,
            dockerfile,
            backend,
            reporter,
            timeout,
        )
    )
    outcome.solve_config = result.solve_config
    outcome.render_error = result.render_error
    return outcome


__all__ = ["BuildOutcome", "build_from_source"]
