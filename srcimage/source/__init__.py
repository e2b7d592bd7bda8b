"""Source acquisition module.

This module handles:
- Keyed working-tree cache store
- Cloning or reusing a cached repository
- Resolving the head commit of the working tree
"""

from srcimage.source.acquire import acquire_source
from srcimage.source.store import LocalWorkingTreeStore, WorkingTreeStore

__all__ = ["LocalWorkingTreeStore", "WorkingTreeStore", "acquire_source"]
