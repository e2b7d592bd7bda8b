"""srcimage - one-shot image builds from a git source.

This package clones (or reuses) a source tree, derives a deterministic image
tag from its head commit, and drives a BuildKit solve that pushes the image.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
