"""Tests for builds/solve.py module."""

from pathlib import Path

import pytest

from srcimage.builds.solve import (
    CONTEXT_RESOURCE,
    DOCKERFILE_RESOURCE,
    ExportEntry,
    OrchestratorConfig,
    compose_buildctl_command,
    new_solve_configuration,
)
from srcimage.config import Settings
from srcimage.types import FrontendKind


@pytest.fixture
def build_root(tmp_path) -> Path:
    """Create a build root with a Dockerfile."""
    (tmp_path / "Dockerfile").write_text("FROM scratch\n")
    return tmp_path


class TestExportEntry:
    """Tests for ExportEntry."""

    def test_push_attrs(self):
        """Should report name and push flag."""
        attrs = ExportEntry(name="svc-abc1234").to_attrs()
        assert attrs == {"name": "svc-abc1234", "push": "true"}

    def test_extra_attrs(self):
        """Should merge extra exporter attributes."""
        attrs = ExportEntry(name="svc", attrs={"compression": "zstd"}).to_attrs()
        assert attrs["compression"] == "zstd"


class TestNewSolveConfiguration:
    """Tests for new_solve_configuration function."""

    def test_single_push_export(self, build_root):
        """Should export the image tag with push enabled."""
        config = new_solve_configuration(build_root, "svc-abc1234", Path("Dockerfile"))

        assert len(config.exports) == 1
        assert config.exports[0].name == "svc-abc1234"
        assert config.exports[0].push is True
        assert config.exports[0].type == "image"

    def test_named_resources(self, build_root):
        """Should expose context and dockerfile directories."""
        config = new_solve_configuration(build_root, "svc", Path("Dockerfile"))
        assert config.named_resources[CONTEXT_RESOURCE] == build_root
        assert config.named_resources[DOCKERFILE_RESOURCE] == build_root

    def test_nested_dockerfile(self, build_root):
        """Should bind the dockerfile resource to the file's directory."""
        config = new_solve_configuration(
            build_root, "svc", Path("docker/Dockerfile.prod")
        )
        assert config.named_resources[DOCKERFILE_RESOURCE] == build_root / "docker"
        assert config.frontend_attrs["filename"] == "Dockerfile.prod"

    def test_default_frontend(self, build_root):
        """Should default to the in-process dockerfile frontend."""
        config = new_solve_configuration(build_root, "svc", Path("Dockerfile"))
        assert config.frontend_kind == FrontendKind.DOCKERFILE
        assert dict(config.frontend_attrs) == {"filename": "Dockerfile"}

    def test_gateway_frontend(self, build_root):
        """Should pass gateway source through frontend attributes."""
        variant = OrchestratorConfig(
            frontend_kind=FrontendKind.GATEWAY,
            frontend_attrs={"source": "docker/dockerfile"},
            export_attrs={"oci-mediatypes": "true"},
        )
        config = new_solve_configuration(build_root, "svc", Path("Dockerfile"), variant)

        assert config.frontend_kind == FrontendKind.GATEWAY
        assert config.frontend_attrs["source"] == "docker/dockerfile"
        assert config.frontend_attrs["filename"] == "Dockerfile"
        assert config.exports[0].to_attrs()["oci-mediatypes"] == "true"

    def test_read_only(self, build_root):
        """Should not allow mutation after construction."""
        config = new_solve_configuration(build_root, "svc", Path("Dockerfile"))
        with pytest.raises(TypeError):
            config.frontend_attrs["filename"] = "Other"  # type: ignore[index]


class TestOrchestratorConfig:
    """Tests for OrchestratorConfig."""

    def test_from_settings_dockerfile(self):
        """Should not add a gateway source for the dockerfile frontend."""
        config = OrchestratorConfig.from_settings(Settings())
        assert config.frontend_kind == FrontendKind.DOCKERFILE
        assert "source" not in config.frontend_attrs
        assert config.fail_on_render_error is False

    def test_from_settings_gateway(self):
        """Should carry the gateway source from settings."""
        settings = Settings(frontend=FrontendKind.GATEWAY, frontend_source="x/y")
        config = OrchestratorConfig.from_settings(settings)
        assert config.frontend_attrs["source"] == "x/y"

    def test_invalid_channel_size(self):
        """Should reject a channel without capacity."""
        with pytest.raises(ValueError):
            OrchestratorConfig(channel_size=0)


class TestComposeBuildctlCommand:
    """Tests for compose_buildctl_command function."""

    def test_command(self, build_root):
        """Should compose a complete buildctl build command."""
        config = new_solve_configuration(build_root, "svc-abc1234", Path("Dockerfile"))
        cmd = compose_buildctl_command(config)

        assert cmd[:3] == ["buildctl", "build", "--progress=rawjson"]
        assert cmd[cmd.index("--frontend") + 1] == "dockerfile.v0"
        assert f"context={build_root}" in cmd
        assert f"dockerfile={build_root}" in cmd
        assert "filename=Dockerfile" in cmd
        assert "type=image,name=svc-abc1234,push=true" in cmd

    def test_addr(self, build_root):
        """Should pass the daemon address before the subcommand."""
        config = new_solve_configuration(build_root, "svc", Path("Dockerfile"))
        cmd = compose_buildctl_command(
            config, addr="tcp://buildkitd:1234", buildctl="/usr/bin/buildctl"
        )
        assert cmd[:4] == [
            "/usr/bin/buildctl",
            "--addr",
            "tcp://buildkitd:1234",
            "build",
        ]
