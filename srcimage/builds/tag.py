"""Image tag derivation.

Tags are derived from the push location and the resolved commit, never
from a mutable ref name, so a reused cache always yields the same tag for
the same commit.
"""

from srcimage.errors import InvalidArgumentError

SHORT_HASH_LENGTH = 7


def resolve_tag(push_location: str, commit: str) -> str:
    """Derive the image tag for a build.

    Args:
        push_location: Image reference the build pushes to.
        commit: Full commit hash of the built source.

    Returns:
        ``<push_location>-<first 7 characters of commit>``.

    Raises:
        InvalidArgumentError: If push_location is empty or commit is too short.
    """
    if not push_location:
        raise InvalidArgumentError("push_location must not be empty")
    if len(commit) < SHORT_HASH_LENGTH:
        raise InvalidArgumentError(
            f"commit hash must have at least {SHORT_HASH_LENGTH} characters, "
            f"got {commit!r}"
        )
    return f"{push_location}-{commit[:SHORT_HASH_LENGTH]}"


__all__ = ["SHORT_HASH_LENGTH", "resolve_tag"]
