"""MCP tool handlers for syncing Apps Script projects with local git trees.

Defines three tools:

- ``gas_sync`` -- pull, merge, commit and push every linked sub-tree
  (or one), with optional dry-run.
- ``gas_sync_status`` -- list linked sub-trees and their breadcrumb metadata.
- ``gas_write`` -- atomic single-file write, guarded against unseen
  remote changes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...file_handler import read_file_with_encoding
from ...sync.breadcrumbs import list_linked_projects, read_breadcrumb, resolve_local_path
from ...sync.models import SyncDirection
from ...sync.reporter import (
    format_linked_projects,
    format_sync_report,
    report_to_json,
    write_result_to_json,
)
from .registry import ToolSpec

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_SCRIPT_ID = {
    "type": "string",
    "description": "Apps Script project ID",
}
_PROJECT_PATH = {
    "type": "string",
    "description": (
        "Sub-tree inside the project, e.g. 'libs/auth'. Empty string for "
        "the project root."
    ),
}

SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="gas_sync",
        description=(
            "Synchronize an Apps Script project with its local git working "
            "copies. Every sub-tree marked by a '.git/config' breadcrumb file "
            "is pulled, three-way merged with local edits, committed, and "
            "pushed back. Conflicts are reported, never auto-resolved."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "script_id": _SCRIPT_ID,
                "project_path": {
                    **_PROJECT_PATH,
                    "description": (
                        _PROJECT_PATH["description"]
                        + " Omit to sync every linked sub-tree."
                    ),
                },
                "direction": {
                    "type": "string",
                    "enum": [d.value for d in SyncDirection],
                    "default": "sync",
                    "description": "'pull-only' never writes to the remote",
                },
                "force_overwrite": {
                    "type": "boolean",
                    "default": False,
                    "description": (
                        "Replace the working tree with the remote files instead "
                        "of merging (local edits stay in git history only)"
                    ),
                },
                "local_path": {
                    "type": "string",
                    "description": (
                        "Override the local folder (absolute path). Requires "
                        "project_path when several sub-trees are linked."
                    ),
                },
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Preview merge and push counts without writing",
                },
            },
            "required": ["script_id"],
        },
    ),
    types.Tool(
        name="gas_sync_status",
        description=(
            "List the git-linked sub-trees of an Apps Script project with "
            "their remote URL, branch, local folder and last sync."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {"script_id": _SCRIPT_ID},
            "required": ["script_id"],
        },
    ),
    types.Tool(
        name="gas_write",
        description=(
            "Write one file atomically: save it in the local working copy, "
            "commit it (running git hooks), and push it to the Apps Script "
            "project. If the push fails the local commit is rolled back. "
            "Refuses to write when the remote copy changed since the last sync."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "script_id": _SCRIPT_ID,
                "path": {
                    "type": "string",
                    "description": (
                        "File path relative to the sub-tree's local folder, "
                        "e.g. 'utils/helper.js' or 'index.html'"
                    ),
                },
                "content": {
                    "type": "string",
                    "description": "New file content",
                },
                "source_file": {
                    "type": "string",
                    "description": (
                        "Read content from this local file instead "
                        "(encoding is detected)"
                    ),
                },
                "project_path": {**_PROJECT_PATH, "default": ""},
                "local_path": {
                    "type": "string",
                    "description": "Override the local folder (absolute path)",
                },
                "message": {
                    "type": "string",
                    "description": "Commit message (default 'Add <path>' or 'Update <path>')",
                },
            },
            "required": ["script_id", "path"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _require(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not value or not isinstance(value, str):
        raise ValueError(f"{key} is required")
    return value


async def _handle_gas_sync(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``gas_sync`` tool."""
    script_id = _require(args, "script_id")
    direction = SyncDirection(args.get("direction", "sync"))

    report = await run_sync(
        context.engine.run,
        script_id,
        project_path=args.get("project_path"),
        direction=direction,
        force_overwrite=bool(args.get("force_overwrite", False)),
        local_path=args.get("local_path"),
        dry_run=bool(args.get("dry_run", False)),
    )

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_report(report))],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


async def _handle_gas_sync_status(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``gas_sync_status`` tool."""
    script_id = _require(args, "script_id")

    files = await run_sync(context.client.list, script_id)
    breadcrumbs = list_linked_projects(files)

    structured = {
        "script_id": script_id,
        "subtrees": [
            {
                "project_path": b.project_path,
                "remote_url": b.remote_url,
                "branch": b.branch,
                "local_path": str(
                    resolve_local_path(b, context.config.base_dir, script_id)
                ),
                "last_sync": b.last_sync.model_dump(mode="json") if b.last_sync else None,
            }
            for b in breadcrumbs
        ],
    }

    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=format_linked_projects(script_id, breadcrumbs)
            )
        ],
        structuredContent=structured,
    )


async def _handle_gas_write(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``gas_write`` tool."""
    script_id = _require(args, "script_id")
    path = _require(args, "path")
    project_path = args.get("project_path") or ""

    content = args.get("content")
    source_file = args.get("source_file")
    if (content is None) == (not source_file):
        raise ValueError("Provide exactly one of content or source_file")
    if source_file:
        source = Path(source_file).expanduser()
        if not source.is_file():
            raise ValueError(f"source_file not found: {source}")
        content, encoding = read_file_with_encoding(source)
        logger.debug("Read %s as %s", source, encoding)

    files = await run_sync(context.client.list, script_id)
    breadcrumb = read_breadcrumb(files, script_id, project_path)
    folder = resolve_local_path(
        breadcrumb, context.config.base_dir, script_id, args.get("local_path")
    )

    result = await run_sync(
        context.transaction.execute,
        script_id,
        folder,
        path,
        content,
        project_path=project_path,
        message=args.get("message"),
    )

    text = f"Wrote {result.name} ({result.local_path})"
    if result.commit_hash:
        text += f"\n  Commit: {result.commit_hash}"
    else:
        text += "\n  No local change to commit"
    if result.hook_modified:
        text += "\n  Git hooks modified the content; the modified version was pushed."

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=write_result_to_json(result),
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], mutating=True, handler=_handle_gas_sync),
    ToolSpec(tool=SYNC_TOOLS[1], mutating=False, handler=_handle_gas_sync_status),
    ToolSpec(tool=SYNC_TOOLS[2], mutating=True, handler=_handle_gas_write),
]
