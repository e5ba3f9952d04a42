"""MCP server exposing virtual branch operations as tools."""

import asyncio
import json
import logging
import sys
import traceback
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import Settings
from .constants import LOG_FILE_NAME
from .controller import Controller
from .errors import GitLanesError
from .models import BranchCreateRequest, BranchUpdateRequest, ClaimSelector
from .repository import ProjectRepository

logger = logging.getLogger("gitlanes")

server = Server("gitlanes")

_state: dict = {}

_BRANCH_ID = {"type": "string", "description": "Virtual branch id (ULID)"}
_CLAIMS = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "hunk_ids": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Hunk ids within the file; omit for the whole file",
            },
        },
        "required": ["path"],
    },
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return [
        Tool(
            name="list_virtual_branches",
            description=(
                "List virtual branches with their uncommitted hunks. "
                "Each hunk reports locked/locked_to when it overlaps an earlier commit."
            ),
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="create_virtual_branch",
            description="Create a virtual branch on top of the base branch. Returns its id.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "notes": {"type": "string"},
                    "order": {"type": "integer"},
                    "selected_for_changes": {
                        "type": "boolean",
                        "description": "New uncommitted changes go to this branch",
                    },
                },
            },
        ),
        Tool(
            name="update_virtual_branch",
            description=(
                "Rename, reorder or select a virtual branch. "
                "'ownership' moves the listed hunks onto it."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _BRANCH_ID,
                    "name": {"type": "string"},
                    "notes": {"type": "string"},
                    "order": {"type": "integer"},
                    "selected_for_changes": {"type": "boolean"},
                    "ownership": _CLAIMS,
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="delete_virtual_branch",
            description="Delete a virtual branch. Its changes become unclaimed again.",
            inputSchema={
                "type": "object",
                "properties": {"id": _BRANCH_ID},
                "required": ["id"],
            },
        ),
        Tool(
            name="create_commit",
            description=(
                "Commit hunks owned by a branch. Without 'claims' every owned hunk is "
                "committed, locked ones included unless exclude_locked is set."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _BRANCH_ID,
                    "message": {"type": "string"},
                    "claims": _CLAIMS,
                    "run_hooks": {"type": "boolean", "default": False},
                    "exclude_locked": {"type": "boolean", "default": False},
                },
                "required": ["id", "message"],
            },
        ),
        Tool(
            name="reset_virtual_branch",
            description=(
                "Reset a branch to an ancestor commit. Dropped changes reappear as "
                "uncommitted hunks on the branch selected for changes."
            ),
            inputSchema={
                "type": "object",
                "properties": {"id": _BRANCH_ID, "target": {"type": "string"}},
                "required": ["id", "target"],
            },
        ),
        Tool(
            name="push_virtual_branch",
            description="Push a branch's head to the configured remote.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _BRANCH_ID,
                    "force": {"type": "boolean", "default": False},
                    "upstream": {"type": "string"},
                },
                "required": ["id"],
            },
        ),
        Tool(
            name="set_base_branch",
            description="Set the integration target, e.g. 'origin/main'.",
            inputSchema={
                "type": "object",
                "properties": {"ref": {"type": "string"}},
                "required": ["ref"],
            },
        ),
        Tool(
            name="get_base_branch",
            description="Show the integration target.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def _selectors(raw: list[dict] | None) -> list[ClaimSelector] | None:
    if raw is None:
        return None
    return [ClaimSelector.model_validate(item) for item in raw]


def dispatch_tool(controller: Controller, project: Path, name: str, arguments: dict):
    """Run one tool call and return a JSON-serializable result.

    Raises:
        GitLanesError: If the operation fails
        ValueError: If the tool name is unknown
    """
    if name == "list_virtual_branches":
        return [v.model_dump(mode="json") for v in controller.list_virtual_branches(project)]

    elif name == "create_virtual_branch":
        branch_id = controller.create_virtual_branch(
            project, BranchCreateRequest.model_validate(arguments)
        )
        return {"id": branch_id}

    elif name == "update_virtual_branch":
        request = BranchUpdateRequest.model_validate(arguments)
        controller.update_virtual_branch(project, request)
        return {"id": request.id}

    elif name == "delete_virtual_branch":
        controller.delete_virtual_branch(project, arguments["id"])
        return {"id": arguments["id"], "deleted": True}

    elif name == "create_commit":
        commit_id = controller.create_commit(
            project,
            arguments["id"],
            arguments["message"],
            explicit_claims=_selectors(arguments.get("claims")),
            run_hooks=arguments.get("run_hooks", False),
            exclude_locked=arguments.get("exclude_locked", False),
        )
        return {"id": arguments["id"], "commit_id": commit_id}

    elif name == "reset_virtual_branch":
        controller.reset_virtual_branch(project, arguments["id"], arguments["target"])
        return {"id": arguments["id"], "target": arguments["target"]}

    elif name == "push_virtual_branch":
        upstream = controller.push_virtual_branch(
            project,
            arguments["id"],
            force=arguments.get("force", False),
            upstream=arguments.get("upstream"),
        )
        return {"id": arguments["id"], "upstream": upstream}

    elif name == "set_base_branch":
        return controller.set_base_branch(project, arguments["ref"]).model_dump(mode="json")

    elif name == "get_base_branch":
        target = controller.get_base_branch(project)
        return target.model_dump(mode="json") if target else None

    raise ValueError(f"Unknown tool: {name}")


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        result = dispatch_tool(_state["controller"], _state["project"], name, arguments or {})
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]
    except GitLanesError as e:
        logger.warning(f"Tool {name} failed: {e}")
        return [TextContent(type="text", text=json.dumps(e.to_dict(), indent=2))]
    except Exception as e:
        logger.error(f"Tool {name} failed: {e}")
        logger.error(traceback.format_exc())
        return [TextContent(type="text", text=f"Error: {e}")]


def _setup_logging(settings: Settings, project: Path) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    try:
        log_file = ProjectRepository(project).metadata_dir / LOG_FILE_NAME
        handlers.insert(0, logging.FileHandler(log_file))
    except GitLanesError:
        # Not a repository yet; tool calls will report it
        pass

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )


def main():
    """Entry point for the MCP server."""
    settings = Settings()
    project = (settings.project or Path.cwd()).resolve()
    _setup_logging(settings, project)

    _state["controller"] = Controller(settings)
    _state["project"] = project

    logger.info(f"gitlanes MCP server starting (project={project})")
    try:
        asyncio.run(_run_server())
    except Exception as e:
        logger.error(f"Server crashed: {e}")
        logger.error(traceback.format_exc())
        raise


async def _run_server():
    """Run the MCP server."""
    async with stdio_server() as (read, write):
        await server.run(read, write, server.create_initialization_options())


if __name__ == "__main__":
    main()
