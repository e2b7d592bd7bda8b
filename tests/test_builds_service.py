"""Tests for builds/service.py module.

Runs the whole pipeline against a local git repository with a fake
backend in place of buildkitd.
"""

import asyncio
import io
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from srcimage.builds.backend import SolveBackend
from srcimage.builds.progress import ProgressReporter
from srcimage.builds.service import build_from_source
from srcimage.config import Settings
from srcimage.errors import BackendInitError, BuildError, CloneError
from srcimage.request import BuildRequest
from srcimage.types import ProgressMode

PUSH_LOCATION = "registry.example.com/team/app"


class FakeBackend(SolveBackend):
    """Backend that accepts every solve."""

    def __init__(self, hang: bool = False) -> None:
        self.hang = hang
        self.solve_config = None
        self.calls = 0

    async def solve(self, solve_config, channel) -> None:
        self.calls += 1
        self.solve_config = solve_config
        if self.hang:
            await asyncio.Event().wait()
        await channel.close()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Create settings with a temporary cache directory."""
    return Settings(cache_dir=tmp_path / "cache", progress_mode=ProgressMode.QUIET)


@pytest.fixture
def reporter() -> ProgressReporter:
    """Create a silent reporter."""
    return ProgressReporter(
        console=Console(file=io.StringIO()), mode=ProgressMode.QUIET
    )


def _request(source_repo, credential: str = "s3cret") -> BuildRequest:
    return BuildRequest.parse(
        PUSH_LOCATION, source_repo.working_tree_dir, "origin", credential
    )


class TestBuildFromSource:
    """Tests for build_from_source function."""

    def test_end_to_end_success(self, source_repo, settings, reporter):
        """Should push the image tagged with the short commit hash."""
        backend = FakeBackend()
        commit = source_repo.head.commit.hexsha

        outcome = build_from_source(
            _request(source_repo),
            settings=settings,
            backend_factory=lambda _settings: backend,
            reporter=reporter,
        )

        assert outcome.image_tag == f"{PUSH_LOCATION}-{commit[:7]}"
        assert outcome.commit == commit
        assert outcome.cache_hit is False
        assert outcome.render_error is None
        export = backend.solve_config.exports[0]
        assert export.name == outcome.image_tag
        assert export.to_attrs()["push"] == "true"
        assert backend.solve_config.named_resources["context"] == outcome.working_tree

    def test_rebuild_reuses_cache(self, source_repo, settings):
        """Should reuse the working tree and derive the same tag."""
        first = build_from_source(
            _request(source_repo),
            settings=settings,
            backend_factory=lambda _settings: FakeBackend(),
            reporter=ProgressReporter(
                console=Console(file=io.StringIO()), mode=ProgressMode.QUIET
            ),
        )
        second = build_from_source(
            _request(source_repo),
            settings=settings,
            backend_factory=lambda _settings: FakeBackend(),
            reporter=ProgressReporter(
                console=Console(file=io.StringIO()), mode=ProgressMode.QUIET
            ),
        )

        assert second.cache_hit is True
        assert second.image_tag == first.image_tag

    def test_dry_run_skips_backend(self, source_repo, settings):
        """Should not create a backend client in dry-run mode."""
        factory = MagicMock()

        outcome = build_from_source(
            _request(source_repo),
            settings=settings,
            backend_factory=factory,
            dry_run=True,
        )

        factory.assert_not_called()
        assert outcome.dry_run is True
        assert outcome.solve_config.exports[0].name == outcome.image_tag

    def test_clone_failure_stops_before_backend(self, tmp_path, settings):
        """Should not reach the backend when acquisition fails."""
        factory = MagicMock()
        request = BuildRequest.parse(PUSH_LOCATION, str(tmp_path / "nope"), "origin")

        with pytest.raises(CloneError):
            build_from_source(request, settings=settings, backend_factory=factory)

        factory.assert_not_called()

    def test_missing_dockerfile(self, source_repo, settings):
        """Should fail before connecting when the instruction file is absent."""
        factory = MagicMock()

        with pytest.raises(BuildError) as exc_info:
            build_from_source(
                _request(source_repo),
                settings=settings,
                backend_factory=factory,
                dockerfile="Containerfile",
            )

        assert "Containerfile" in str(exc_info.value)
        factory.assert_not_called()

    def test_backend_unavailable(self, source_repo, settings):
        """Should propagate BackendInitError from client construction."""
        factory = MagicMock(side_effect=BackendInitError("buildkitd unavailable"))

        with pytest.raises(BackendInitError):
            build_from_source(
                _request(source_repo), settings=settings, backend_factory=factory
            )

    def test_timeout(self, source_repo, settings, reporter):
        """Should honour a caller-supplied timeout."""
        backend = FakeBackend(hang=True)

        with pytest.raises(TimeoutError):
            build_from_source(
                _request(source_repo),
                settings=settings,
                backend_factory=lambda _settings: backend,
                reporter=reporter,
                timeout=0.2,
            )
