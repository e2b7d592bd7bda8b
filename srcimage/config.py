"""Configuration settings for srcimage.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from srcimage.types import FrontendKind, ProgressMode


def _default_cache_dir() -> Path:
    """Return the default working-tree cache directory."""
    return Path.home() / ".cache" / "srcimage" / "worktrees"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SRCIMAGE_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="SRCIMAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for cached working trees",
    )
    dockerfile: str = Field(
        default="Dockerfile",
        min_length=1,
        description="Build-instruction file, relative to the working tree root",
    )

    # Backend
    buildkit_addr: str | None = Field(
        default=None,
        description="buildkitd address (uses buildctl default if not set)",
    )
    buildctl_path: str = Field(
        default="buildctl",
        description="Path or name of the buildctl executable",
    )
    frontend: FrontendKind = Field(
        default=FrontendKind.DOCKERFILE,
        description="Build frontend: in-process dockerfile or gateway",
    )
    frontend_source: str = Field(
        default="docker/dockerfile",
        description="Frontend image used when frontend is gateway.v0",
    )
    backend_probe_timeout: int = Field(
        default=30,
        ge=1,
        description="Seconds allowed for the backend reachability probe",
    )

    # Source
    git_username: str = Field(
        default="token",
        min_length=1,
        description="Username sent with the bearer-style git credential",
    )

    # Progress
    progress_mode: ProgressMode = Field(
        default=ProgressMode.AUTO,
        description="Progress output: auto, tty, plain or quiet",
    )
    fail_on_render_error: bool = Field(
        default=False,
        description="Abort the build when progress rendering fails",
    )
    channel_size: int = Field(
        default=64,
        ge=1,
        le=4096,
        description="Capacity of the status event channel",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
