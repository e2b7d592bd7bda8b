"""Solve configuration for the build backend.

This module handles:
- Orchestrator configuration (frontend choice, frontend and export attributes)
- Constructing the SolveConfiguration for one build
- Composing the `buildctl build` command from a SolveConfiguration
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from srcimage.types import FrontendKind

if TYPE_CHECKING:
    from srcimage.config import Settings

CONTEXT_RESOURCE = "context"
DOCKERFILE_RESOURCE = "dockerfile"


def _frozen(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ExportEntry:
    """A named output sink for a build.

    Attributes:
        name: Destination image reference.
        push: Whether the image is pushed to its registry.
        type: Exporter type.
        attrs: Additional exporter attributes.
    """

    name: str
    push: bool = True
    type: str = "image"
    attrs: Mapping[str, str] = field(default_factory=dict)

    def to_attrs(self) -> dict[str, str]:
        """Return the full exporter attribute map."""
        attrs = {"name": self.name, "push": "true" if self.push else "false"}
        attrs.update(self.attrs)
        return attrs


@dataclass(frozen=True)
class SolveConfiguration:
    """Everything the backend needs to run one solve.

    Attributes:
        exports: Output sinks.
        named_resources: Filesystem roots exposed to the frontend by name.
        frontend_kind: Frontend interpreting the build instructions.
        frontend_attrs: Attributes passed to the frontend.
    """

    exports: tuple[ExportEntry, ...]
    named_resources: Mapping[str, Path]
    frontend_kind: FrontendKind
    frontend_attrs: Mapping[str, str]


@dataclass(frozen=True)
class OrchestratorConfig:
    """Build variant selection for the orchestrator.

    Attributes:
        frontend_kind: In-process dockerfile frontend or gateway frontend.
        frontend_attrs: Extra frontend attributes (e.g. gateway source).
        export_attrs: Extra image exporter attributes.
        fail_on_render_error: Treat progress rendering failures as fatal.
        channel_size: Capacity of the status event channel.
    """

    frontend_kind: FrontendKind = FrontendKind.DOCKERFILE
    frontend_attrs: Mapping[str, str] = field(default_factory=dict)
    export_attrs: Mapping[str, str] = field(default_factory=dict)
    fail_on_render_error: bool = False
    channel_size: int = 64

    def __post_init__(self) -> None:
        if self.channel_size < 1:
            raise ValueError("channel_size must be at least 1")
        object.__setattr__(self, "frontend_attrs", _frozen(self.frontend_attrs))
        object.__setattr__(self, "export_attrs", _frozen(self.export_attrs))

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        """Create the orchestrator configuration from application settings."""
        frontend_attrs: dict[str, str] = {}
        if settings.frontend == FrontendKind.GATEWAY:
            frontend_attrs["source"] = settings.frontend_source
        return cls(
            frontend_kind=settings.frontend,
            frontend_attrs=frontend_attrs,
            fail_on_render_error=settings.fail_on_render_error,
            channel_size=settings.channel_size,
        )


def new_solve_configuration(
    build_root: Path,
    image_tag: str,
    dockerfile: Path,
    config: OrchestratorConfig | None = None,
) -> SolveConfiguration:
    """Construct the solve configuration for a build.

    Args:
        build_root: Build context root (the working tree).
        image_tag: Destination image reference, pushed on success.
        dockerfile: Build-instruction file; relative paths resolve
            against build_root.
        config: Variant selection; defaults to the dockerfile frontend.

    Returns:
        Read-only SolveConfiguration.
    """
    if config is None:
        config = OrchestratorConfig()

    file = dockerfile if dockerfile.is_absolute() else build_root / dockerfile

    frontend_attrs = {"filename": file.name}
    frontend_attrs.update(config.frontend_attrs)

    return SolveConfiguration(
        exports=(
            ExportEntry(name=image_tag, push=True, attrs=_frozen(config.export_attrs)),
        ),
        named_resources=MappingProxyType(
            {CONTEXT_RESOURCE: build_root, DOCKERFILE_RESOURCE: file.parent}
        ),
        frontend_kind=config.frontend_kind,
        frontend_attrs=MappingProxyType(frontend_attrs),
    )


def compose_buildctl_command(
    solve_config: SolveConfiguration,
    addr: str | None = None,
    buildctl: str = "buildctl",
) -> list[str]:
    """Compose the `buildctl build` command for a solve.

    Args:
        solve_config: Solve configuration.
        addr: buildkitd address (None = buildctl default).
        buildctl: buildctl executable.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [buildctl]
    if addr:
        cmd.extend(["--addr", addr])
    cmd.extend(["build", "--progress=rawjson"])

    cmd.extend(["--frontend", solve_config.frontend_kind.value])

    for name, path in sorted(solve_config.named_resources.items()):
        cmd.extend(["--local", f"{name}={path}"])

    for key, value in sorted(solve_config.frontend_attrs.items()):
        cmd.extend(["--opt", f"{key}={value}"])

    for export in solve_config.exports:
        attrs = ",".join(f"{k}={v}" for k, v in export.to_attrs().items())
        cmd.extend(["--output", f"type={export.type},{attrs}"])

    return cmd


__all__ = [
    "CONTEXT_RESOURCE",
    "DOCKERFILE_RESOURCE",
    "ExportEntry",
    "OrchestratorConfig",
    "SolveConfiguration",
    "compose_buildctl_command",
    "new_solve_configuration",
]
