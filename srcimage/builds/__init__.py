"""Build orchestration module.

This module handles:
- Image tag derivation
- Solve configuration and the BuildKit backend client
- Status event streaming and progress rendering
- Running solve and progress concurrently
"""

from srcimage.builds.orchestrator import BuildOrchestrator, BuildResult
from srcimage.builds.tag import resolve_tag

__all__ = ["BuildOrchestrator", "BuildResult", "resolve_tag"]

# Access submodules via srcimage.builds.backend, srcimage.builds.service, etc.
