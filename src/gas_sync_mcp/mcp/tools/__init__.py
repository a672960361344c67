"""MCP tool handlers for GAS sync operations.

This package wraps the sync engine and atomic write transaction in async
handlers with structured error responses.
"""

from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
]
