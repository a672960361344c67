"""Tests for sync/guard.py — optimistic concurrency checks."""

from datetime import datetime, timedelta, timezone

import pytest

from gas_sync_mcp.cache import LRUCache
from gas_sync_mcp.errors import StaleWriteError
from gas_sync_mcp.file_handler import write_bytes
from gas_sync_mcp.sync.guard import (
    check_in_sync,
    is_in_sync,
    known_update_time,
    record_update_times,
)
from gas_sync_mcp.sync.models import RemoteFile, RemoteFileType

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def local(tmp_path):
    path = tmp_path / "Main.js"
    write_bytes(path, b"x", mod_time=T0.timestamp())
    return path


def _remote(name: str, when: datetime | None) -> RemoteFile:
    return RemoteFile(name=name, type=RemoteFileType.CODE, update_time=when)


class TestCheckInSync:
    """Tests for check_in_sync() and is_in_sync()."""

    def test_equal_times_in_sync(self, local):
        check_in_sync(local, T0)
        assert is_in_sync(local, T0.timestamp())

    def test_local_newer(self, local):
        check_in_sync(local, T0 - timedelta(seconds=1))

    def test_remote_newer_rejected(self, local):
        later = T0 + timedelta(milliseconds=1)
        assert not is_in_sync(local, later)

        with pytest.raises(StaleWriteError) as exc_info:
            check_in_sync(local, later)

        assert exc_info.value.local_mtime == T0.timestamp()
        assert "pull-only" in exc_info.value.remediation

    def test_missing_local_file_passes(self, tmp_path):
        check_in_sync(tmp_path / "new.js", T0)

    def test_no_remote_time_passes(self, local):
        check_in_sync(local, None)


class TestUpdateTimeCache:
    """Tests for record_update_times() and known_update_time()."""

    def test_records_and_never_goes_backwards(self):
        cache = LRUCache()
        record_update_times(cache, "s", [_remote("Main", T0), _remote("x", None)])
        record_update_times(cache, "s", [_remote("Main", T0 - timedelta(hours=1))])

        assert cache.get(("s", "Main")) == T0
        assert ("s", "x") not in cache

    def test_known_prefers_latest(self):
        cache = LRUCache()
        cache.put(("s", "Main"), T0)

        later = T0 + timedelta(seconds=5)
        assert known_update_time(cache, "s", "Main", _remote("Main", later)) == later
        assert known_update_time(cache, "s", "Main", _remote("Main", T0 - timedelta(1))) == T0
        assert known_update_time(cache, "s", "Main", None) == T0

    def test_unknown(self):
        assert known_update_time(LRUCache(), "s", "Main", None) is None
