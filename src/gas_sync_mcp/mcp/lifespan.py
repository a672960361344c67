"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

from ..cache import LRUCache
from ..config import Config, load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config
from ..core.client import ScriptApiClient
from ..sync.engine import SyncEngine
from ..sync.locks import PathLockTable
from ..sync.transaction import AtomicWriteTransaction

logger = logging.getLogger(__name__)

# Remote update times remembered per (script_id, file name)
REMOTE_TIMES_CAPACITY = 4096


@dataclass(frozen=True)
class ServerContext:
    """Objects shared by every tool call for the life of the process.

    ``engine`` and ``transaction`` share one lock table and one
    remote-times cache, so a sync and a single-file write against the same
    working copy never interleave.
    """

    config: Config
    client: ScriptApiClient
    engine: SyncEngine
    transaction: AtomicWriteTransaction
    locks: PathLockTable
    remote_times: LRUCache


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def build_context(config: Config) -> ServerContext:
    """Wire the client, lock table, cache, engine and transaction together."""
    client = ScriptApiClient(config)
    locks = PathLockTable(timeout=config.lock_timeout)
    remote_times = LRUCache(REMOTE_TIMES_CAPACITY)
    engine = SyncEngine(
        client,
        base_dir=config.base_dir,
        merge_strategy=config.merge_strategy,
        locks=locks,
        remote_times=remote_times,
        git_timeout=config.git_timeout,
        default_branch=config.default_branch,
    )
    transaction = AtomicWriteTransaction(
        client,
        locks=locks,
        remote_times=remote_times,
        git_timeout=config.git_timeout,
    )
    return ServerContext(
        config=config,
        client=client,
        engine=engine,
        transaction=transaction,
        locks=locks,
        remote_times=remote_times,
    )


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config files if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the shared ServerContext

    No remote call is made at startup: the access token may legitimately
    be supplied later, and ``ping`` reports its absence.

    Args:
        config_overrides: Optional dict with config values from CLI
            (api_url, access_token, base_dir, merge_strategy, debug)

    Yields:
        Dict with 'context' key containing the ServerContext

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("GAS Sync MCP Server starting...")

    try:
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        sync_fallbacks: dict[str, Any] | None = None
        sources = []

        config_files = discover_config_files()
        if config_files:
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = unified.remote.model_dump(exclude_none=True)
            sync_fallbacks = unified.sync.model_dump()
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            api_url=overrides.get("api_url"),
            access_token=overrides.get("access_token"),
            base_dir=overrides.get("base_dir"),
            merge_strategy=overrides.get("merge_strategy"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
            sync_fallbacks=sync_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    context = build_context(config)
    logger.info(
        "API URL: %s, base dir: %s, merge strategy: %s",
        config.api_url,
        config.base_dir,
        config.merge_strategy,
    )
    _stderr_print(f"  API URL: {config.api_url}")
    _stderr_print(f"  Working copies: {config.base_dir}")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"context": context}

    logger.info("MCP server shutting down")
    _stderr_print("GAS Sync MCP Server shutting down.")
