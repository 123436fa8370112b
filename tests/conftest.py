"""Shared pytest fixtures for beadwork tests."""

import subprocess
from pathlib import Path

import pytest


def git(cwd, *args):
    """Run a git command in cwd and return stripped stdout."""
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return proc.stdout.strip()


def configure_identity(path, name="Test User"):
    git(path, "config", "user.name", name)
    git(path, "config", "user.email", "test@example.com")
    git(path, "config", "commit.gpgsign", "false")


class RecordingCommitter:
    """Committer that records messages instead of touching git."""

    def __init__(self):
        self.messages = []
        self.config = {}

    def commit(self, message):
        self.messages.append(message)
        return True

    def set_config(self, key, value):
        self.config[key] = value


@pytest.fixture
def committer():
    return RecordingCommitter()


@pytest.fixture
def store(tmp_path, committer):
    """IssueStore on a bare worktree skeleton, no git involved."""
    from beadwork_core import IssueStore

    work_tree = tmp_path / "worktree"
    work_tree.mkdir()
    issue_store = IssueStore(work_tree, "test", committer=committer)
    issue_store.ensure_layout()
    return issue_store


@pytest.fixture
def git_repo(tmp_path):
    """A fresh git repository with one commit on its main branch.

    Returns the repository path.
    """
    path = tmp_path / "myapp"
    path.mkdir()
    git(path, "init", "--quiet")
    configure_identity(path)
    (path / "README.md").write_text("myapp\n")
    git(path, "add", "README.md")
    git(path, "commit", "--quiet", "-m", "initial")
    return path


@pytest.fixture
def repo(git_repo):
    """Initialized beadwork Repo with prefix 'test'."""
    from beadwork_core import Repo

    r = Repo.locate(git_repo)
    r.init("test")
    return r


@pytest.fixture
def repo_store(repo):
    """IssueStore committing through a real Repo."""
    from beadwork_core import IssueStore

    return IssueStore(repo.work_tree, repo.prefix, committer=repo)


@pytest.fixture
def remote(tmp_path, git_repo):
    """Bare remote with the project pushed to it, wired up as git_repo's origin.

    Returns the bare repository path.
    """
    bare = tmp_path / "remote.git"
    git(tmp_path, "init", "--quiet", "--bare", str(bare))
    git(git_repo, "remote", "add", "origin", str(bare))
    git(git_repo, "push", "--quiet", "origin", "HEAD")
    return bare


def clone_of(bare: Path, dest: Path, name: str) -> Path:
    git(bare.parent, "clone", "--quiet", str(bare), str(dest))
    configure_identity(dest, name)
    return dest


@pytest.fixture
def two_clones(tmp_path, remote, git_repo):
    """Two beadwork clones sharing one remote.

    The first clone is git_repo itself (initialized and pushed); the second
    is a fresh clone that adopts the remote beadwork branch on init.

    Returns (repo_a, repo_b) as beadwork Repo objects.
    """
    from beadwork_core import Repo

    repo_a = Repo.locate(git_repo)
    repo_a.init("test")
    repo_a.push()

    clone_path = clone_of(remote, tmp_path / "clone", "Other User")
    repo_b = Repo.locate(clone_path)
    repo_b.init()
    return repo_a, repo_b
