"""Shared type definitions for srcimage.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class FrontendKind(str, Enum):
    """BuildKit frontend used to interpret the build instructions."""

    DOCKERFILE = "dockerfile.v0"
    GATEWAY = "gateway.v0"


class ProgressMode(str, Enum):
    """How build progress is rendered."""

    AUTO = "auto"
    TTY = "tty"
    PLAIN = "plain"
    QUIET = "quiet"


class CloneFailure(str, Enum):
    """Classification of a failed clone."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AcquiredSource:
    """Working tree materialized for a build.

    Attributes:
        working_tree: Root of the checked-out working tree.
        commit: Full hash of the resolved head commit.
        cache_hit: True when an existing cached repository was reused.
    """

    working_tree: Path
    commit: str
    cache_hit: bool = False

    def __iter__(self) -> Iterator[Path | str]:
        return iter((self.working_tree, self.commit))


__all__ = [
    "AcquiredSource",
    "CloneFailure",
    "FrontendKind",
    "ProgressMode",
]
