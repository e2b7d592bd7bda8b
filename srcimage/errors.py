"""Error taxonomy for srcimage.

Every failure surfaced by the build pipeline is a SrcImageError with a
stable ``code`` for programmatic handling and a ``stage`` naming the
pipeline step that failed. Only the CLI turns these into exit codes.
"""

from __future__ import annotations

from srcimage.types import CloneFailure

# Error code constants
CONFIGURATION_ERROR = "configuration_error"
FILESYSTEM_ERROR = "filesystem_error"
CLONE_ERROR = "clone_error"
REFERENCE_ERROR = "reference_error"
INVALID_ARGUMENT = "invalid_argument"
BACKEND_UNAVAILABLE = "backend_unavailable"
BUILD_ERROR = "build_failed"
RENDER_ERROR = "render_error"


class SrcImageError(Exception):
    """Base error for srcimage operations."""

    stage = "internal"

    def __init__(self, message: str, code: str = "internal_error") -> None:
        super().__init__(message)
        self.code = code


class ConfigurationError(SrcImageError):
    """Raised when a build request is malformed or incomplete."""

    stage = "config"

    def __init__(
        self,
        message: str,
        fields: list[str] | None = None,
        code: str = CONFIGURATION_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.fields = fields or []


class FilesystemError(SrcImageError):
    """Raised when the working-tree cache directory cannot be prepared."""

    stage = "cache"

    def __init__(self, message: str, code: str = FILESYSTEM_ERROR) -> None:
        super().__init__(message, code=code)


class CloneError(SrcImageError):
    """Raised when cloning the source repository fails."""

    stage = "clone"

    def __init__(
        self,
        message: str,
        cause: CloneFailure = CloneFailure.UNKNOWN,
        code: str = CLONE_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.cause = cause


class ReferenceResolutionError(SrcImageError):
    """Raised when the repository head cannot be resolved to a commit."""

    stage = "resolve"

    def __init__(self, message: str, code: str = REFERENCE_ERROR) -> None:
        super().__init__(message, code=code)


class InvalidArgumentError(SrcImageError):
    """Raised when tag derivation receives unusable inputs."""

    stage = "tag"

    def __init__(self, message: str, code: str = INVALID_ARGUMENT) -> None:
        super().__init__(message, code=code)


class BackendInitError(SrcImageError):
    """Raised when the build backend client cannot be constructed."""

    stage = "backend"

    def __init__(self, message: str, code: str = BACKEND_UNAVAILABLE) -> None:
        super().__init__(message, code=code)


class BuildError(SrcImageError):
    """Raised when the solve fails.

    Attributes:
        diagnostics: Backend diagnostic text (vertex errors, stderr tail).
        exit_code: Backend process exit code, if it ran.
    """

    stage = "build"

    def __init__(
        self,
        message: str,
        diagnostics: str = "",
        exit_code: int | None = None,
        code: str = BUILD_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.diagnostics = diagnostics
        self.exit_code = exit_code


class RenderError(SrcImageError):
    """Raised when progress rendering fails."""

    stage = "progress"

    def __init__(self, message: str, code: str = RENDER_ERROR) -> None:
        super().__init__(message, code=code)


__all__ = [
    "BACKEND_UNAVAILABLE",
    "BUILD_ERROR",
    "CLONE_ERROR",
    "CONFIGURATION_ERROR",
    "FILESYSTEM_ERROR",
    "INVALID_ARGUMENT",
    "REFERENCE_ERROR",
    "RENDER_ERROR",
    "BackendInitError",
    "BuildError",
    "CloneError",
    "ConfigurationError",
    "FilesystemError",
    "InvalidArgumentError",
    "ReferenceResolutionError",
    "RenderError",
    "SrcImageError",
]
