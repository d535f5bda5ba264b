"""
Shared fixtures: an in-memory StoreCapability with injectable failures.
"""

from typing import Dict, List, Optional, Tuple

import pytest

from redis_transfer.exceptions import StoreError, KeyConflictError
from redis_transfer.store import StoreCapability


class InMemoryStore(StoreCapability):
    """
    Dict-backed store. Values are kept as their "dump" payload, so dump and
    restore are inverses on this implementation.

    Failure knobs:
        ttl_failures / dump_failures: key -> number of StoreErrors to raise
            before the call succeeds
        restore_errors: key -> exception raised by restore
        vanish_before_dump: keys deleted right before their DUMP is served
    """

    def __init__(self, name: str = "memory", data: Optional[Dict[bytes, Tuple[bytes, int]]] = None):
        self.name = name
        self.data: Dict[bytes, Tuple[bytes, int]] = dict(data or {})
        self.calls: List[Tuple[str, bytes]] = []
        self.ttl_failures: Dict[bytes, int] = {}
        self.dump_failures: Dict[bytes, int] = {}
        self.restore_errors: Dict[bytes, Exception] = {}
        self.vanish_before_dump = set()
        self.list_error: Optional[Exception] = None
        self.ping_error: Optional[Exception] = None

    def ping(self) -> None:
        if self.ping_error:
            raise self.ping_error

    def list_keys(self) -> List[bytes]:
        self.calls.append(("list", b""))
        if self.list_error:
            raise self.list_error
        return list(self.data)

    def remaining_ttl(self, key: bytes) -> Optional[int]:
        self.calls.append(("ttl", key))
        if self.ttl_failures.get(key, 0) > 0:
            self.ttl_failures[key] -= 1
            raise StoreError(f"PTTL {key!r} timed out")
        if key not in self.data:
            return None
        return self.data[key][1]

    def dump(self, key: bytes) -> Optional[bytes]:
        self.calls.append(("dump", key))
        if self.dump_failures.get(key, 0) > 0:
            self.dump_failures[key] -= 1
            raise StoreError(f"DUMP {key!r} timed out")
        if key in self.vanish_before_dump:
            self.data.pop(key, None)
        if key not in self.data:
            return None
        return self.data[key][0]

    def restore(self, key: bytes, ttl: int, value: bytes) -> None:
        self.calls.append(("restore", key))
        if key in self.restore_errors:
            raise self.restore_errors[key]
        if key in self.data:
            raise KeyConflictError(key)
        self.data[key] = (value, ttl)

    def calls_for(self, key: bytes) -> List[str]:
        return [op for op, k in self.calls if k == key]


@pytest.fixture
def source():
    return InMemoryStore("source", {
        b"a": (b"1", 0),
        b"b": (b"2", 5000),
    })


@pytest.fixture
def destination():
    return InMemoryStore("destination")


@pytest.fixture
def progress_events():
    events = []

    def callback(index, total, key):
        events.append((index, total, key))

    callback.events = events
    return callback
