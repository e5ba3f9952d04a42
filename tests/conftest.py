"""Shared test fixtures and helpers for gitlanes tests."""

import os
import tempfile
from pathlib import Path

import pytest
from git import Repo

from gitlanes.config import Settings
from gitlanes.controller import Controller


# --- Fixtures ---


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep GITLANES_* variables of the calling shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("GITLANES_"):
            monkeypatch.delenv(name)


@pytest.fixture
def temp_dir():
    """Provide a temporary directory cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def origin(temp_dir):
    """Bare repository acting as the remote."""
    return Repo.init(temp_dir / "origin.git", bare=True)


@pytest.fixture
def repository(temp_dir, origin):
    """Project repository with an initial commit pushed to origin/master.

    Yields the GitPython Repo; its working directory is the project.
    """
    repo = Repo.init(temp_dir / "project")
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test User")
        config.set_value("user", "email", "test@example.com")
        config.set_value("commit", "gpgsign", "false")
    repo.create_remote("origin", origin.git_dir)

    repo.git.symbolic_ref("HEAD", "refs/heads/master")
    repo.git.commit("--allow-empty", "-m", "initial commit")
    push(repo)
    yield repo
    repo.close()


@pytest.fixture
def project(repository) -> Path:
    """Path of the project working directory."""
    return Path(repository.working_tree_dir)


@pytest.fixture
def controller():
    """Controller with default settings, independent of the environment."""
    return Controller(Settings())


# --- Helper Functions (not fixtures) ---


def write_file(repo: Repo, path: str, lines: list[str]) -> None:
    """Write ``lines`` joined by newlines (no trailing newline)."""
    target = Path(repo.working_tree_dir) / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text("\n".join(lines))


def gen_file(repo: Repo, path: str, line_count: int) -> list[str]:
    """Write a file of ``line N`` lines and return them."""
    lines = [f"line {i}" for i in range(line_count)]
    write_file(repo, path, lines)
    return lines


def commit_all(repo: Repo, message: str = "some commit") -> str:
    """Commit everything in the working directory on the real branch."""
    repo.git.add("--all")
    repo.git.commit("-m", message)
    return repo.head.commit.hexsha


def push(repo: Repo) -> None:
    """Push master to origin, updating refs/remotes/origin/master."""
    repo.git.push("origin", "master")


def commit_and_push_initial(repo: Repo) -> str:
    sha = commit_all(repo, "initial commit")
    push(repo)
    return sha


def find_branch(controller: Controller, project: Path, branch_id: str):
    """Reconciled view of one branch."""
    return next(b for b in controller.list_virtual_branches(project) if b.id == branch_id)


def find_hunks(controller: Controller, project: Path, path: str):
    """All (branch view, hunk) pairs for ``path`` across every branch."""
    return [
        (view, hunk)
        for view in controller.list_virtual_branches(project)
        for f in view.files
        if f.path == path
        for hunk in f.hunks
    ]
