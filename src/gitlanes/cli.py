"""Command line interface for virtual branches."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Settings
from .controller import Controller
from .errors import GitLanesError
from .models import (
    BranchCreateRequest,
    BranchUpdateRequest,
    ClaimSelector,
    VirtualBranchView,
)

console = Console()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(ctx: click.Context, error: GitLanesError) -> None:
    if ctx.obj.get("as_json"):
        _echo_json(error.to_dict())
    else:
        console.print(f"[red]Error:[/red] {escape(str(error))}")
    ctx.exit(1)


def _parse_claims(values: tuple[str, ...]) -> list[ClaimSelector] | None:
    if not values:
        return None
    try:
        return [ClaimSelector.parse(v) for v in values]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--claim")


def _find_branch(views: list[VirtualBranchView], ref: str) -> VirtualBranchView:
    """Match a branch by id, unique id prefix, or exact name."""
    for view in views:
        if view.id == ref or view.name == ref:
            return view
    matches = [v for v in views if v.id.startswith(ref.upper())]
    if len(matches) == 1:
        return matches[0]
    raise click.BadParameter(f"No single virtual branch matches {ref!r}", param_hint="BRANCH")


@click.group()
@click.option(
    "--project",
    envvar="GITLANES_PROJECT",
    type=click.Path(path_type=Path, file_okay=False),
    help="Project working directory (default: current directory)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx, project, as_json):
    """gitlanes - several lines of work in one working directory."""
    ctx.ensure_object(dict)
    try:
        settings = Settings()
    except ValueError as e:
        raise click.UsageError(str(e))

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, stream=sys.stderr)

    ctx.obj["project"] = project or settings.project or Path.cwd()
    ctx.obj["controller"] = Controller(settings)
    ctx.obj["as_json"] = as_json


@cli.command()
@click.argument("ref")
@click.pass_context
def init(ctx, ref):
    """Set the integration target (e.g. origin/main) branches build on."""
    controller: Controller = ctx.obj["controller"]
    try:
        target = controller.set_base_branch(ctx.obj["project"], ref)
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json(target.model_dump(mode="json"))
    else:
        console.print(f"[green]✓[/green] Base branch [cyan]{escape(target.ref)}[/cyan] at {target.sha[:7]}")


@cli.command()
@click.pass_context
def status(ctx):
    """Show virtual branches with their hunks and locks."""
    controller: Controller = ctx.obj["controller"]
    try:
        views = controller.list_virtual_branches(ctx.obj["project"])
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json([v.model_dump(mode="json") for v in views])
        return

    if not views:
        console.print("[green]No virtual branches, working tree clean[/green]")
        return

    for view in views:
        marker = " [yellow]*[/yellow]" if view.selected_for_changes else ""
        head = view.head[:7] if view.head else "no commits"
        console.print(f"[bold cyan]{escape(view.name)}[/bold cyan]{marker} [dim]{view.id} ({head})[/dim]")

        if not view.files:
            console.print("  [dim]no uncommitted changes[/dim]")
        for f in view.files:
            for h in f.hunks:
                lock = ""
                if h.locked:
                    lock = " [red]locked[/red] -> " + ", ".join(l.commit_id[:7] for l in h.locked_to)
                console.print(
                    f"  {escape(f.path)} [dim]@@ -{h.old_start},{h.old_lines} "
                    f"+{h.new_start},{h.new_lines} @@ {h.id[:8]}[/dim]{lock}"
                )
        for c in view.commits[:5]:
            console.print(f"  [yellow]{c.id[:7]}[/yellow] {escape(c.message.splitlines()[0]) if c.message else ''}")
        console.print()


# ─────────────────────────────────────────────────────────────────────────────
# Branch commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
def branch():
    """Create, update, delete and list virtual branches."""
    pass


@branch.command("list")
@click.pass_context
def branch_list(ctx):
    """List virtual branches."""
    controller: Controller = ctx.obj["controller"]
    try:
        views = controller.list_virtual_branches(ctx.obj["project"])
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json([v.to_summary() for v in views])
        return

    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Order", justify="right")
    table.add_column("Head", style="yellow")
    table.add_column("Hunks", justify="right")
    table.add_column("Locked", justify="right", style="red")

    for v in views:
        s = v.to_summary()
        name = escape(f"{v.name} *" if v.selected_for_changes else v.name)
        table.add_row(
            v.id, name, str(v.order), s["head"] or "-",
            str(s["hunk_count"]), str(s["locked_hunk_count"]),
        )
    console.print(table)


@branch.command("create")
@click.option("--name", default=None, help="Branch name (default: 'Virtual branch')")
@click.option("--notes", default="", help="Free-form notes")
@click.option("--order", type=int, default=None, help="Rank among branches")
@click.option("--select/--no-select", "selected", default=None, help="Receive new changes")
@click.pass_context
def branch_create(ctx, name, notes, order, selected):
    """Create a virtual branch."""
    controller: Controller = ctx.obj["controller"]
    request = BranchCreateRequest(
        name=name, notes=notes, order=order, selected_for_changes=selected
    )
    try:
        branch_id = controller.create_virtual_branch(ctx.obj["project"], request)
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json({"id": branch_id})
    else:
        console.print(f"[green]✓[/green] Created virtual branch {branch_id}")


@branch.command("update")
@click.argument("branch_ref")
@click.option("--name", default=None, help="New name")
@click.option("--notes", default=None, help="New notes")
@click.option("--order", type=int, default=None, help="New rank")
@click.option("--select/--no-select", "selected", default=None, help="Receive new changes")
@click.option("--claim", "claims", multiple=True, help="Move hunks here: PATH or PATH:ID,ID")
@click.pass_context
def branch_update(ctx, branch_ref, name, notes, order, selected, claims):
    """Update a virtual branch or move hunks onto it.

    Examples:
        gitlanes branch update "Virtual branch" --select
        gitlanes branch update 01J... --claim src/app.py
    """
    controller: Controller = ctx.obj["controller"]
    project = ctx.obj["project"]
    ownership = _parse_claims(claims)
    try:
        view = _find_branch(controller.list_virtual_branches(project), branch_ref)
        controller.update_virtual_branch(
            project,
            BranchUpdateRequest(
                id=view.id,
                name=name,
                notes=notes,
                order=order,
                selected_for_changes=selected,
                ownership=ownership,
            ),
        )
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json({"id": view.id})
    else:
        console.print(f"[green]✓[/green] Updated {escape(view.name)}")


@branch.command("delete")
@click.argument("branch_ref")
@click.pass_context
def branch_delete(ctx, branch_ref):
    """Delete a virtual branch; its changes go back to the pool."""
    controller: Controller = ctx.obj["controller"]
    project = ctx.obj["project"]
    try:
        view = _find_branch(controller.list_virtual_branches(project), branch_ref)
        controller.delete_virtual_branch(project, view.id)
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json({"id": view.id, "deleted": True})
    else:
        console.print(f"[green]✓[/green] Deleted {escape(view.name)}")


# ─────────────────────────────────────────────────────────────────────────────
# Commit, reset, push
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("branch_ref")
@click.option("-m", "--message", required=True, help="Commit message")
@click.option("--claim", "claims", multiple=True, help="Only commit PATH or PATH:ID,ID")
@click.option("--run-hooks", is_flag=True, help="Run pre-commit and commit-msg hooks")
@click.option("--exclude-locked", is_flag=True, help="Leave locked hunks uncommitted")
@click.pass_context
def commit(ctx, branch_ref, message, claims, run_hooks, exclude_locked):
    """Commit the hunks a virtual branch owns."""
    controller: Controller = ctx.obj["controller"]
    project = ctx.obj["project"]
    selectors = _parse_claims(claims)
    try:
        view = _find_branch(controller.list_virtual_branches(project), branch_ref)
        commit_id = controller.create_commit(
            project,
            view.id,
            message,
            explicit_claims=selectors,
            run_hooks=run_hooks,
            exclude_locked=exclude_locked,
        )
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json({"branch_id": view.id, "commit_id": commit_id})
    else:
        console.print(f"[green]✓[/green] \\[{commit_id[:7]}] {escape(message)}")


@cli.command()
@click.argument("branch_ref")
@click.argument("target")
@click.pass_context
def reset(ctx, branch_ref, target):
    """Reset a virtual branch to an earlier commit."""
    controller: Controller = ctx.obj["controller"]
    project = ctx.obj["project"]
    try:
        view = _find_branch(controller.list_virtual_branches(project), branch_ref)
        controller.reset_virtual_branch(project, view.id, target)
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json({"branch_id": view.id, "target": target})
    else:
        console.print(f"[green]✓[/green] Reset {escape(view.name)} to {escape(target)}")


@cli.command()
@click.argument("branch_ref")
@click.option("--force", is_flag=True, help="Force push")
@click.option("--upstream", default=None, help="Remote branch name")
@click.pass_context
def push(ctx, branch_ref, force, upstream):
    """Push a virtual branch to the remote."""
    controller: Controller = ctx.obj["controller"]
    project = ctx.obj["project"]
    try:
        view = _find_branch(controller.list_virtual_branches(project), branch_ref)
        name = controller.push_virtual_branch(project, view.id, force=force, upstream=upstream)
    except GitLanesError as e:
        _fail(ctx, e)
        return

    if ctx.obj["as_json"]:
        _echo_json({"branch_id": view.id, "upstream": name})
    else:
        console.print(f"[green]✓[/green] Pushed {escape(view.name)} to {escape(controller.settings.remote)}/{escape(name)}")


if __name__ == "__main__":
    cli()
