"""Tests for environment-driven settings."""

import pytest

from gitlanes.config import Settings
from gitlanes.constants import DEFAULT_CONTEXT_LINES
from gitlanes.controller import Controller

from conftest import write_file


def test_defaults():
    settings = Settings()
    assert settings.context_lines == DEFAULT_CONTEXT_LINES
    assert settings.log_level == "INFO"
    assert settings.remote == "origin"
    assert settings.project is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GITLANES_CONTEXT_LINES", "0")
    monkeypatch.setenv("GITLANES_LOG_LEVEL", "debug")
    monkeypatch.setenv("GITLANES_REMOTE", "upstream")
    monkeypatch.setenv("GITLANES_AUTHOR_NAME", "Ada")
    monkeypatch.setenv("GITLANES_AUTHOR_EMAIL", "ada@example.com")
    monkeypatch.setenv("GITLANES_PROJECT", "/tmp/project")

    settings = Settings()
    assert settings.context_lines == 0
    assert settings.log_level == "DEBUG"
    assert settings.remote == "upstream"
    assert settings.author_name == "Ada"
    assert str(settings.project) == "/tmp/project"


def test_empty_variable_uses_default(monkeypatch):
    monkeypatch.setenv("GITLANES_CONTEXT_LINES", "")
    assert Settings().context_lines == DEFAULT_CONTEXT_LINES


def test_unrelated_variables_are_ignored(monkeypatch):
    monkeypatch.setenv("GITLANES_SOMETHING_ELSE", "1")
    assert Settings().remote == "origin"


@pytest.mark.parametrize(
    "name, value",
    [
        ("GITLANES_CONTEXT_LINES", "three"),
        ("GITLANES_CONTEXT_LINES", "-1"),
        ("GITLANES_LOG_LEVEL", "chatty"),
        ("GITLANES_REMOTE", "   "),
    ],
)
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Settings()


def test_author_override_is_used(project, repository):
    controller = Controller(Settings(author_name="Ada", author_email="ada@example.com"))
    controller.set_base_branch(project, "origin/master")
    branch_id = controller.create_virtual_branch(project)
    write_file(repository, "file.txt", ["content"])
    commit = repository.commit(controller.create_commit(project, branch_id, "authored"))
    assert commit.author.name == "Ada"
    assert commit.committer.email == "ada@example.com"
