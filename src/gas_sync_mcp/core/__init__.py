"""Remote client and async helpers shared by the engine and the MCP server."""

from .async_utils import run_sync
from .client import RemoteStore, ScriptApiClient

__all__ = ["RemoteStore", "ScriptApiClient", "run_sync"]
