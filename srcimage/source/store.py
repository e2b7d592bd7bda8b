"""Working-tree cache store.

Working trees are cached per push location so repeated builds of the same
target reuse an existing clone. The mapping from push location to cache
directory is deterministic and injective: distinct push locations never
share a directory. The store never deletes entries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote

from srcimage.errors import FilesystemError

logger = logging.getLogger(__name__)

CACHE_DIR_MODE = 0o755


def cache_key_for(push_location: str) -> str:
    """Encode a push location as a single path component.

    Percent-encoding every reserved character (including '/' and '%')
    keeps the encoding reversible, so two push locations map to the
    same directory only if they are equal.

    Args:
        push_location: Image reference the build pushes to.

    Returns:
        Filesystem-safe directory name.
    """
    if not push_location:
        raise ValueError("push_location must not be empty")
    encoded = quote(push_location, safe="")
    # '.' and '..' survive quoting but are not usable directory names
    if encoded in (".", ".."):
        encoded = encoded.replace(".", "%2E")
    return encoded


class WorkingTreeStore(ABC):
    """Keyed store of working-tree directories (key = push location)."""

    @abstractmethod
    def locate(self, push_location: str) -> Path:
        """Return the directory for a push location without creating it."""

    @abstractmethod
    def ensure(self, push_location: str) -> Path:
        """Return the directory for a push location, creating it if needed.

        Raises:
            FilesystemError: If the directory cannot be created.
        """


class LocalWorkingTreeStore(WorkingTreeStore):
    """Store rooted at a local cache directory.

    Args:
        root: Cache root; entries live at ``root / cache_key_for(key)``.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def locate(self, push_location: str) -> Path:
        return self.root / cache_key_for(push_location)

    def ensure(self, push_location: str) -> Path:
        directory = self.locate(push_location)
        try:
            directory.mkdir(mode=CACHE_DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Failed to create cache directory {directory}: {e}"
            ) from e
        if not directory.is_dir():
            raise FilesystemError(f"Cache path is not a directory: {directory}")
        logger.debug("Cache directory for %s: %s", push_location, directory)
        return directory

    def __repr__(self) -> str:
        return f"LocalWorkingTreeStore(root={self.root!r})"


__all__ = [
    "CACHE_DIR_MODE",
    "LocalWorkingTreeStore",
    "WorkingTreeStore",
    "cache_key_for",
]
