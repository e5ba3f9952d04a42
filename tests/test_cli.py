"""Tests for CLI commands."""

import json

from click.testing import CliRunner

from gitlanes.cli import cli

from conftest import gen_file, write_file


runner = CliRunner()


def _invoke(project, *args):
    return runner.invoke(cli, ["--project", str(project), *args])


def _json(project, *args):
    result = runner.invoke(cli, ["--project", str(project), "--json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_init_sets_base(project, repository):
    data = _json(project, "init", "origin/master")
    assert data["sha"] == repository.head.commit.hexsha
    assert data["ref"] == "origin/master"


def test_status_without_base_fails(project):
    result = runner.invoke(cli, ["--project", str(project), "--json", "status"])
    assert result.exit_code == 1
    error = json.loads(result.stdout)
    assert error["error"] == "TargetNotSetError"
    assert error["operation"] == "list_virtual_branches"


def test_status_shows_changes(project, repository):
    _json(project, "init", "origin/master")
    write_file(repository, "file.txt", ["content"])

    result = _invoke(project, "status")
    assert result.exit_code == 0
    assert "Virtual branch" in result.output
    assert "file.txt" in result.output


def test_branch_create_and_list(project):
    _json(project, "init", "origin/master")
    created = _json(project, "branch", "create", "--name", "feature")

    branches = _json(project, "branch", "list")
    assert [b["id"] for b in branches] == [created["id"]]
    assert branches[0]["name"] == "feature"
    assert branches[0]["selected_for_changes"] is True


def test_commit_and_lock(project, repository):
    _json(project, "init", "origin/master")
    _json(project, "branch", "create", "--name", "feature")
    write_file(repository, "file.txt", ["content"])

    committed = _json(project, "commit", "feature", "-m", "first")
    assert repository.commit(committed["commit_id"]).message == "first"

    write_file(repository, "file.txt", ["updated content"])
    views = _json(project, "status")
    hunk = views[0]["files"][0]["hunks"][0]
    assert hunk["locked"] is True
    assert hunk["locked_to"][0]["commit_id"] == committed["commit_id"]

    branches = _json(project, "branch", "list")
    assert branches[0]["locked_hunk_count"] == 1
    assert branches[0]["commit_count"] == 1


def test_commit_with_claim(project, repository):
    lines = gen_file(repository, "a.txt", 3)
    write_file(repository, "b.txt", ["b"])
    repository.git.add("--all")
    repository.git.commit("-m", "files")
    repository.git.push("origin", "master")
    _json(project, "init", "origin/master")
    _json(project, "branch", "create")

    lines[0] = "changed"
    write_file(repository, "a.txt", lines)
    write_file(repository, "b.txt", ["changed"])

    committed = _json(project, "commit", "Virtual branch", "-m", "only a", "--claim", "a.txt")
    assert (repository.commit(committed["commit_id"]).tree / "b.txt").data_stream.read() == b"b"

    views = _json(project, "status")
    assert [f["path"] for f in views[0]["files"]] == ["b.txt"]


def test_branch_update_moves_claims(project, repository):
    _json(project, "init", "origin/master")
    _json(project, "branch", "create", "--name", "first")
    second = _json(project, "branch", "create", "--name", "second")
    write_file(repository, "file.txt", ["content"])

    _json(project, "branch", "update", second["id"], "--claim", "file.txt")
    views = {v["name"]: v for v in _json(project, "status")}
    assert views["first"]["files"] == []
    assert views["second"]["files"][0]["path"] == "file.txt"


def test_reset(project, repository):
    base = _json(project, "init", "origin/master")
    _json(project, "branch", "create", "--name", "feature")
    write_file(repository, "file.txt", ["content"])
    _json(project, "commit", "feature", "-m", "first")

    _json(project, "reset", "feature", base["sha"])
    views = _json(project, "status")
    assert views[0]["head"] is None
    assert views[0]["files"][0]["path"] == "file.txt"


def test_reset_to_invalid_target(project, repository):
    _json(project, "init", "origin/master")
    _json(project, "branch", "create", "--name", "feature")

    result = runner.invoke(
        cli, ["--project", str(project), "--json", "reset", "feature", "0" * 40]
    )
    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"] == "InvalidTargetError"


def test_push(project, repository, origin):
    _json(project, "init", "origin/master")
    _json(project, "branch", "create", "--name", "feature")
    write_file(repository, "file.txt", ["content"])
    committed = _json(project, "commit", "feature", "-m", "first")

    pushed = _json(project, "push", "feature", "--upstream", "review/feature")
    assert pushed["upstream"] == "review/feature"
    assert origin.commit("refs/heads/review/feature").hexsha == committed["commit_id"]


def test_delete(project):
    _json(project, "init", "origin/master")
    created = _json(project, "branch", "create")
    _json(project, "branch", "delete", created["id"])
    assert _json(project, "branch", "list") == []


def test_unknown_branch_is_a_usage_error(project):
    _json(project, "init", "origin/master")
    result = _invoke(project, "commit", "nope", "-m", "x")
    assert result.exit_code == 2


def test_status_prints_brackets_literally(project, repository):
    _json(project, "init", "origin/master")
    _json(project, "branch", "create", "--name", "[wip] feature")
    write_file(repository, "notes/[draft].txt", ["content"])

    result = _invoke(project, "status")
    assert result.exit_code == 0
    assert "[wip] feature" in result.output
    assert "notes/[draft].txt" in result.output

    result = _invoke(project, "commit", "[wip] feature", "-m", "[bold]literal")
    assert result.exit_code == 0
    assert "[bold]literal" in result.output
