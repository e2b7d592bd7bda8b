"""Source acquisition for builds.

This module handles:
- Materializing a working tree for a push location in the cache store
- Cloning with a bearer-style credential, or reusing an existing clone
- Resolving the head commit used to tag the image

Steps run strictly in order: cache directory, clone-or-open, head
resolution. The first failure ends the acquisition.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from srcimage.errors import CloneError, ReferenceResolutionError
from srcimage.source.store import WorkingTreeStore
from srcimage.types import AcquiredSource, CloneFailure

logger = logging.getLogger(__name__)

DEFAULT_GIT_USERNAME = "token"

# Abort transfers slower than 1 KiB/s for a minute instead of hanging
LOW_SPEED_LIMIT = "1024"
LOW_SPEED_TIME = "60"

_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "permission denied",
    "returned error: 401",
    "returned error: 403",
)
_NOT_FOUND_MARKERS = (
    "not found",
    "does not exist",
    "does not appear to be a git repository",
    "returned error: 404",
)
_NETWORK_MARKERS = (
    "could not resolve host",
    "failed to connect",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "network is unreachable",
    "early eof",
)


def redact_url(url: str) -> str:
    """Strip userinfo from a URL so it can be logged."""
    if "://" not in url:
        return url
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit(parts._replace(netloc=host))


def credential_env(
    token: str, username: str = DEFAULT_GIT_USERNAME
) -> dict[str, str]:
    """Compose the git environment for an authenticated clone.

    The credential travels as an HTTP basic Authorization header set via
    GIT_CONFIG_* variables, so it is never persisted in the cloned
    repository's configuration.

    Args:
        token: Secret sent as the password.
        username: Fixed username sentinel.

    Returns:
        Environment overrides for the git process.
    """
    env = {
        "GIT_TERMINAL_PROMPT": "0",
        "GIT_HTTP_LOW_SPEED_LIMIT": LOW_SPEED_LIMIT,
        "GIT_HTTP_LOW_SPEED_TIME": LOW_SPEED_TIME,
    }
    if token:
        basic = base64.b64encode(f"{username}:{token}".encode()).decode("ascii")
        env.update(
            {
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "http.extraHeader",
                "GIT_CONFIG_VALUE_0": f"Authorization: Basic {basic}",
            }
        )
    return env


def classify_clone_failure(stderr: str) -> CloneFailure:
    """Classify a failed clone from git's error output."""
    text = stderr.lower()
    if any(marker in text for marker in _AUTH_MARKERS):
        return CloneFailure.AUTH
    if any(marker in text for marker in _NETWORK_MARKERS):
        return CloneFailure.NETWORK
    if any(marker in text for marker in _NOT_FOUND_MARKERS):
        return CloneFailure.NOT_FOUND
    return CloneFailure.UNKNOWN


def open_cached_repo(directory: Path) -> git.Repo | None:
    """Open the repository occupying a cache directory, if any.

    Args:
        directory: Cache directory for a push location.

    Returns:
        Repo if the directory is the root of a non-bare repository,
        None otherwise.
    """
    try:
        repo = git.Repo(directory)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return None
    if repo.bare or repo.working_tree_dir is None:
        return None
    if Path(repo.working_tree_dir).resolve() != directory.resolve():
        return None
    return repo


def clone_repo(
    source_location: str,
    directory: Path,
    source_ref: str,
    token: str,
    username: str = DEFAULT_GIT_USERNAME,
) -> git.Repo:
    """Clone a repository into an empty cache directory.

    The ref is bound as the name of the cloned remote; the default branch
    of the source is checked out.

    Raises:
        CloneError: If the clone fails for any reason.
    """
    logger.info(
        "Cloning %s into %s (remote %s)",
        redact_url(source_location),
        directory,
        source_ref,
    )
    try:
        return git.Repo.clone_from(
            source_location,
            directory,
            env=credential_env(token, username),
            origin=source_ref,
        )
    except GitCommandError as e:
        stderr = str(e.stderr or "").strip()
        cause = classify_clone_failure(stderr)
        raise CloneError(
            f"Failed to clone {redact_url(source_location)} ({cause.value}): "
            f"{stderr or e}",
            cause=cause,
        ) from e


def resolve_head(repo: git.Repo) -> str:
    """Resolve the full hash of the repository's current head commit.

    Raises:
        ReferenceResolutionError: If head does not point at a commit.
    """
    try:
        if not repo.head.is_valid():
            raise ReferenceResolutionError(
                f"Repository has no commits at head: {repo.working_tree_dir}"
            )
        return repo.head.commit.hexsha
    except (ValueError, git.GitError) as e:
        raise ReferenceResolutionError(
            f"Failed to resolve head of {repo.working_tree_dir}: {e}"
        ) from e


def acquire_source(
    store: WorkingTreeStore,
    push_location: str,
    source_location: str,
    source_ref: str,
    credential: str,
    username: str = DEFAULT_GIT_USERNAME,
) -> AcquiredSource:
    """Materialize the working tree for a build and resolve its commit.

    Reuses the repository already cached for the push location without any
    network access; otherwise clones into the (empty) cache directory.

    Args:
        store: Working-tree cache store.
        push_location: Image reference; the cache key.
        source_location: Git URL or path to clone from.
        source_ref: Remote name bound during the clone.
        credential: Token used as the git password.
        username: Username sentinel paired with the token.

    Returns:
        AcquiredSource with working tree root and full commit hash.

    Raises:
        FilesystemError: If the cache directory cannot be created.
        CloneError: If cloning fails.
        ReferenceResolutionError: If head cannot be resolved.
    """
    directory = store.ensure(push_location)

    repo = open_cached_repo(directory)
    cache_hit = repo is not None
    if repo is not None:
        logger.info("Repository already cached at %s, opening", directory)
    else:
        repo = clone_repo(
            source_location, directory, source_ref, credential, username
        )

    try:
        commit = resolve_head(repo)
        working_tree = Path(repo.working_tree_dir or directory)
    finally:
        repo.close()

    logger.info("Resolved head of %s to %s", push_location, commit)
    return AcquiredSource(
        working_tree=working_tree, commit=commit, cache_hit=cache_hit
    )


__all__ = [
    "DEFAULT_GIT_USERNAME",
    "acquire_source",
    "classify_clone_failure",
    "clone_repo",
    "credential_env",
    "open_cached_repo",
    "redact_url",
    "resolve_head",
]
