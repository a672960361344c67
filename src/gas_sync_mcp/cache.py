"""Bounded LRU cache with an explicit doubly-linked recency list.

One instance is created per process (in the server lifespan) and passed
to the components that need it; there is no module-level cache.  The
sync engine uses it to remember the last remote ``updateTime`` seen for
each ``(script_id, file name)`` so the concurrency guard can run before
a write without another listing round-trip.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable
from typing import Any


class _Node:
    __slots__ = ("key", "value", "prev", "next")

    def __init__(self, key: Hashable, value: Any) -> None:
        self.key = key
        self.value = value
        self.prev: _Node | None = None
        self.next: _Node | None = None


class LRUCache:
    """Map with a capacity bound and least-recently-used eviction.

    ``get`` and ``put`` both mark the entry most recently used.  When a
    ``put`` exceeds ``capacity`` the tail (least recent) entry is evicted.
    Thread-safe.

    Args:
        capacity: Maximum number of entries (at least 1).
    """

    def __init__(self, capacity: int = 1024) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._map: dict[Hashable, _Node] = {}
        # Sentinels: head.next is most recent, tail.prev is least recent
        self._head = _Node(None, None)
        self._tail = _Node(None, None)
        self._head.next = self._tail
        self._tail.prev = self._head
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Linked list primitives
    # ------------------------------------------------------------------

    def _unlink(self, node: _Node) -> None:
        node.prev.next = node.next
        node.next.prev = node.prev
        node.prev = node.next = None

    def _push_front(self, node: _Node) -> None:
        node.prev = self._head
        node.next = self._head.next
        self._head.next.prev = node
        self._head.next = node

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            node = self._map.get(key)
            if node is None:
                return default
            self._unlink(node)
            self._push_front(node)
            return node.value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            node = self._map.get(key)
            if node is not None:
                node.value = value
                self._unlink(node)
                self._push_front(node)
                return

            node = _Node(key, value)
            self._map[key] = node
            self._push_front(node)
            if len(self._map) > self.capacity:
                lru = self._tail.prev
                self._unlink(lru)
                del self._map[lru.key]

    def pop(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            node = self._map.pop(key, None)
            if node is None:
                return default
            self._unlink(node)
            return node.value

    def clear(self) -> None:
        with self._lock:
            self._map.clear()
            self._head.next = self._tail
            self._tail.prev = self._head

    def keys(self) -> list[Hashable]:
        """Keys from most to least recently used."""
        with self._lock:
            result = []
            node = self._head.next
            while node is not self._tail:
                result.append(node.key)
                node = node.next
            return result

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._map

    def __len__(self) -> int:
        with self._lock:
            return len(self._map)
