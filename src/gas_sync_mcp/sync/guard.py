"""Optimistic Concurrency Guard.

A local file is stale when the remote changed after the local copy was
last written: ``local mtime < remote updateTime``.  Files written by a
pull carry the remote ``updateTime`` as their mtime, so a freshly synced
file is in sync and any local edit only moves its mtime forward.

There is no tolerance buffer.  Staleness is never auto-resolved.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from ..cache import LRUCache
from ..errors import StaleWriteError
from .models import RemoteFile

logger = logging.getLogger(__name__)


def _epoch(value: datetime | float | None) -> float | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


def is_in_sync(local_path: str | Path, remote_update_time: datetime | float | None) -> bool:
    """Non-raising form of ``check_in_sync``."""
    remote = _epoch(remote_update_time)
    path = Path(local_path)
    if remote is None or not path.exists():
        return True
    return path.stat().st_mtime >= remote


def check_in_sync(
    local_path: str | Path, remote_update_time: datetime | float | None
) -> None:
    """Reject a write whose local copy predates the remote's last change.

    Args:
        local_path: Local file about to be overwritten.  A missing file is
            a first write and always passes.
        remote_update_time: Last known remote ``updateTime`` for the same
            file, or ``None`` when the remote has no such file.

    Raises:
        StaleWriteError: The local modification time is older than the
            remote update time.
    """
    if is_in_sync(local_path, remote_update_time):
        return

    local_mtime = Path(local_path).stat().st_mtime
    remote = _epoch(remote_update_time)
    logger.warning(
        "Stale write rejected for %s (local %.3f < remote %.3f)",
        local_path,
        local_mtime,
        remote,
    )
    raise StaleWriteError(str(local_path), local_mtime, remote)


# ---------------------------------------------------------------------------
# Last-known remote update times
# ---------------------------------------------------------------------------


def record_update_times(cache: LRUCache, script_id: str, files: list[RemoteFile]) -> None:
    """Remember each file's ``update_time``, never moving an entry backwards."""
    for f in files:
        if f.update_time is None:
            continue
        key = (script_id, f.name)
        known = cache.get(key)
        if known is None or f.update_time > known:
            cache.put(key, f.update_time)


def known_update_time(
    cache: LRUCache, script_id: str, name: str, listed: RemoteFile | None
) -> datetime | None:
    """Latest update time seen for a file, from a listing or from the cache.

    A write made by this process may not show up in the next listing
    straight away; the cache keeps the guard from going backwards.
    """
    cached = cache.get((script_id, name))
    listed_time = listed.update_time if listed is not None else None
    candidates = [t for t in (cached, listed_time) if t is not None]
    return max(candidates) if candidates else None
