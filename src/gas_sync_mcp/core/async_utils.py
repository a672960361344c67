"""Async utilities for running blocking sync and git work from MCP handlers."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Sync runs, atomic writes and remote calls all block on subprocesses or
    the network; handlers wrap them with this helper.

    Example:
        report = await run_sync(engine.run, script_id, direction=direction)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
