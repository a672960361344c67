"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec immutability
- ToolRegistry read-only filtering, list_tools, tool_count, call_tool
- Exceptions raised by handlers becoming structured error results
"""

from unittest.mock import MagicMock

import mcp.types as types
import pytest

from gas_sync_mcp.errors import ConflictError
from gas_sync_mcp.mcp.tools import ALL_SPECS
from gas_sync_mcp.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name: str, mutating: bool = False, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(context, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        mutating=mutating,
        handler=handler,
    )


def _raising(exc):
    async def handler(context, args):
        raise exc

    return handler


def _text(result: types.CallToolResult) -> str:
    return result.content[0].text


# ---------------------------------------------------------------------------
# ToolSpec / ToolRegistry
# ---------------------------------------------------------------------------


class TestToolSpec:
    """Tests for the ToolSpec dataclass."""

    def test_frozen(self):
        spec = _make_spec("t")
        with pytest.raises(AttributeError):
            spec.mutating = True


class TestToolRegistry:
    """Tests for ToolRegistry filtering and dispatch."""

    def test_all_tools_listed_by_default(self):
        registry = ToolRegistry([_make_spec("a"), _make_spec("b", mutating=True)])

        assert [t.name for t in registry.list_tools()] == ["a", "b"]
        assert registry.tool_count() == 2

    def test_read_only_drops_mutating(self):
        registry = ToolRegistry(
            [_make_spec("a"), _make_spec("b", mutating=True)], read_only=True
        )
        assert [t.name for t in registry.list_tools()] == ["a"]

    def test_shipped_specs_in_read_only_mode(self):
        registry = ToolRegistry(ALL_SPECS, read_only=True)
        assert [t.name for t in registry.list_tools()] == ["gas_sync_status"]

    async def test_call_dispatches(self):
        registry = ToolRegistry([_make_spec("a")])
        result = await registry.call_tool("a", None, MagicMock())
        assert _text(result) == "ok:a"

    async def test_passes_context_and_args(self):
        seen = {}

        async def handler(context, args):
            seen["context"], seen["args"] = context, args
            return types.CallToolResult(content=[])

        context = MagicMock()
        await ToolRegistry([_make_spec("a", handler=handler)]).call_tool(
            "a", {"x": 1}, context
        )
        assert seen == {"context": context, "args": {"x": 1}}

    async def test_unknown_tool_raises(self):
        with pytest.raises(ValueError, match="Unknown tool: nope"):
            await ToolRegistry([]).call_tool("nope", {}, MagicMock())

    async def test_filtered_tool_not_callable(self):
        registry = ToolRegistry([_make_spec("w", mutating=True)], read_only=True)
        with pytest.raises(ValueError):
            await registry.call_tool("w", {}, MagicMock())

    async def test_sync_error_translated(self):
        registry = ToolRegistry(
            [_make_spec("a", handler=_raising(ConflictError(["x.js"], "/w")))]
        )
        result = await registry.call_tool("a", {}, MagicMock())

        assert result.isError
        assert _text(result).startswith("Error (conflict): Merge conflicts in 1 file(s): x.js")

    async def test_value_error_is_validation_error(self):
        registry = ToolRegistry([_make_spec("a", handler=_raising(ValueError("bad path")))])
        result = await registry.call_tool("a", {}, MagicMock())
        assert _text(result).startswith("Error (validation_error): bad path")

    async def test_unexpected_error_is_server_error(self):
        registry = ToolRegistry([_make_spec("a", handler=_raising(KeyError("k")))])
        result = await registry.call_tool("a", {}, MagicMock())

        assert result.isError
        assert "Error (server_error)" in _text(result)

