"""ToolSpec and ToolRegistry for mode-based tool filtering.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, whether the tool
  mutates local or remote state, and an async handler with standardized
  signature (context, args) -> CallToolResult.
- ToolRegistry: Drops mutating specs when the server runs read-only, then
  provides list_tools() and call_tool() dispatch with error translation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import mcp.types as types

from ...errors import GasSyncError

if TYPE_CHECKING:
    from ..lifespan import ServerContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        mutating: True if the tool writes to a working copy or the remote.
        handler: Async handler with signature (context, args) -> CallToolResult.
    """

    tool: types.Tool
    mutating: bool
    handler: Callable[[ServerContext, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs.

    With ``read_only=True`` every mutating spec is left out, so the tool is
    neither listed nor callable.
    """

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if read_only and spec.mutating:
                continue
            self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: ServerContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Sync errors, validation errors and unexpected exceptions are all
        turned into structured CallToolResult responses with a corrective
        action.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_sync_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(context, args)
        except GasSyncError as e:
            logger.warning("%s in %s: %s", type(e).__name__, name, e)
            return translate_sync_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log for details, then retry.",
            )
