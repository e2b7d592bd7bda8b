"""Shared fixtures for srcimage tests.

Git fixtures create real repositories in tmp_path so clones run against
local paths and never touch the network.
"""

from pathlib import Path

import git
import pytest

from srcimage.source.store import LocalWorkingTreeStore


def _configure_identity(repo: git.Repo) -> None:
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "srcimage tests")
        writer.set_value("user", "email", "tests@example.com")


@pytest.fixture
def source_repo(tmp_path: Path) -> git.Repo:
    """Create a repository with one commit containing a Dockerfile."""
    path = tmp_path / "upstream"
    repo = git.Repo.init(path)
    _configure_identity(repo)
    (path / "Dockerfile").write_text("FROM scratch\nCOPY . /\n")
    (path / "app.txt").write_text("hello\n")
    repo.index.add(["Dockerfile", "app.txt"])
    repo.index.commit("Initial commit")
    return repo


@pytest.fixture
def empty_source_repo(tmp_path: Path) -> Path:
    """Create a bare repository without any commits."""
    path = tmp_path / "empty.git"
    git.Repo.init(path, bare=True)
    return path


@pytest.fixture
def store(tmp_path: Path) -> LocalWorkingTreeStore:
    """Create a working-tree store rooted in a temporary directory."""
    return LocalWorkingTreeStore(tmp_path / "cache")
