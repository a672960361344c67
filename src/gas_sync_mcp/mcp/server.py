"""MCP Server for Apps Script project sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents keep Apps Script projects and local git working copies in sync.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import shutil
import sys

import mcp.server.stdio
import mcp.types as types
import yaml
from dotenv import load_dotenv
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import LoggingConfig, build_config
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..version import check_version_consistency
from .lifespan import ServerContext, server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("gas-sync-mcp")

# Global context (initialized in main)
_context: ServerContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, never mutates)
# ---------------------------------------------------------------------------


async def _handle_ping(
    context: ServerContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- report configuration, optionally reach the API."""
    config = context.config
    consistent, version_message = check_version_consistency()
    lines = [
        f"GAS Sync MCP server {__version__}",
        f"  {version_message}",
        f"  API URL: {config.api_url}",
        f"  Access token: {'configured' if config.access_token else 'MISSING'}",
        f"  git: {shutil.which('git') or 'NOT FOUND'}",
        f"  Working copies: {config.base_dir}",
        f"  Merge strategy: {config.merge_strategy}",
    ]
    structured = {
        "version": __version__,
        "version_consistent": consistent,
        "api_url": config.api_url,
        "token_configured": bool(config.access_token),
        "git_available": shutil.which("git") is not None,
    }

    script_id = args.get("script_id")
    if script_id:
        files = await run_sync(context.client.list, script_id)
        lines.append(f"  Project {script_id}: {len(files)} files reachable")
        structured["file_count"] = len(files)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description=(
            "Check the GAS sync server configuration. With script_id, also "
            "lists the project to confirm the API is reachable."
        ),
        annotations=types.ToolAnnotations(readOnlyHint=True, openWorldHint=True),
        inputSchema={
            "type": "object",
            "properties": {
                "script_id": {
                    "type": "string",
                    "description": "Optional project ID to test API access with",
                },
            },
            "required": [],
        },
    ),
    mutating=False,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ServerContext:
    """Get the global ServerContext.

    Raises:
        RuntimeError: If the server lifespan has not started.
    """
    if _context is None:
        raise RuntimeError(
            "ServerContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ServerContext | None) -> None:
    """Set the global ServerContext, or None to clear it."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear it."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List the registered tools (mutating tools are absent in read-only mode)."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch."""
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def _yaml_logging() -> LoggingConfig:
    """The ``logging`` section of the YAML config files, or defaults.

    A config that fails to load falls back to defaults here;
    ``server_lifespan`` loads it again and reports the error.
    """
    load_dotenv()
    if not discover_config_files():
        return LoggingConfig()
    try:
        return build_config(load_hierarchical_config()).logging
    except (ValueError, yaml.YAMLError):
        return LoggingConfig()


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging is set up for MCP mode (file only, never stdout) before the
    stdio transport starts, so nothing contaminates protocol negotiation.

    Args:
        config_overrides: Optional dict with CLI values (api_url,
            access_token, base_dir, merge_strategy, debug, log_file,
            read_only)
    """
    overrides = config_overrides or {}

    yaml_logging = _yaml_logging()
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
        yaml_level=yaml_logging.level,
        yaml_file=yaml_logging.file,
    )

    # Version check (non-blocking warning for stale installs)
    is_consistent, message = check_version_consistency()
    if not is_consistent:
        logger.warning(message)
        sys.stderr.write(f"Warning: {message}\n")
    else:
        logger.info(message)

    read_only = overrides.get("read_only", False)
    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of {len(all_specs)} tools enabled",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_context() is called here rather than in the lifespan so that
    # running this file as __main__ updates the same module globals the
    # handlers read.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="gas-sync-mcp",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="GAS Sync MCP Server - sync Apps Script projects with local git repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .gas_sync/config.yml)
  gas-sync-mcp

  # Keep working copies somewhere else
  gas-sync-mcp --base-dir ~/src/apps-script

  # Expose only non-mutating tools
  gas-sync-mcp --read-only

  # Custom log file location, debug logging of every git command
  gas-sync-mcp --log-file /var/log/gas-sync-mcp.log --debug

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--api-url",
        help="Override the Apps Script API base URL (takes precedence over GAS_API_URL and config files)",
    )
    parser.add_argument(
        "--access-token",
        help="Override the OAuth bearer token"
        " (visible in process list -- prefer GAS_ACCESS_TOKEN env var for security)",
    )
    parser.add_argument(
        "--base-dir",
        help="Folder for default per-project working copies (default: ~/gas-repos)",
    )
    parser.add_argument(
        "--merge-strategy",
        choices=["auto", "three-way", "worktree"],
        help="Merge strategy (default: auto, which prefers worktree when git supports it)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that never write locally or remotely",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path (default: LOG_FILE env var or /tmp/gas-sync-mcp.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gas-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.api_url:
        config_overrides["api_url"] = args.api_url
    if args.access_token:
        config_overrides["access_token"] = args.access_token
    if args.base_dir:
        config_overrides["base_dir"] = args.base_dir
    if args.merge_strategy:
        config_overrides["merge_strategy"] = args.merge_strategy
    if args.read_only:
        config_overrides["read_only"] = True
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    if config_overrides:
        override_keys = [k for k in config_overrides if k != "access_token"]
        if override_keys:
            print(
                f"Config overrides from CLI: {', '.join(override_keys)}",
                file=sys.stderr,
            )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
