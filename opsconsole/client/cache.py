"""
PersistentCache — JSON entries in a client store with an explicit eviction policy.

Each entry is {timestamp (ms), userId, data}. Policy:
  - TTL: an entry is fresh iff now - timestamp < ttl_ms; stale entries are evicted on read
  - size cap: a value whose encoded entry exceeds max_bytes is not stored, and any
    previous value under the key is removed
  - owner scope: an entry written for another user is evicted on read
  - invalidate(key) / clear() remove entries explicitly
"""

import json
import logging
from typing import Any, Callable, Iterable, Optional

from opsconsole.client.storage import read_json
from opsconsole.utils import now_ms

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


def is_fresh(timestamp: Optional[int], now: int, ttl_ms: int = DAY_MS) -> bool:
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        return False
    return now - timestamp < ttl_ms


class PersistentCache:

    def __init__(
        self,
        store,
        ttl_ms: Optional[int] = DAY_MS,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], int] = now_ms,
        keys: Iterable[str] = (),
    ):
        self.store = store
        self.ttl_ms = ttl_ms
        self.max_bytes = max_bytes
        self.clock = clock
        self._keys = set(keys)

    def get(self, key: str, owner: Any = None, expires: bool = True) -> Any:
        """Return the cached data, or None when missing, stale or owned by someone else."""
        entry = read_json(self.store, key)
        if entry is None:
            return None
        if not isinstance(entry, dict) or "data" not in entry:
            self.invalidate(key)
            return None
        if owner is not None and entry.get("userId") != _owner_id(owner):
            logger.debug(f"Cache '{key}' belongs to another user, evicting")
            self.invalidate(key)
            return None
        if expires and self.ttl_ms is not None and not is_fresh(entry.get("timestamp"), self.clock(), self.ttl_ms):
            logger.debug(f"Cache '{key}' expired, evicting")
            self.invalidate(key)
            return None
        return entry["data"]

    def set(self, key: str, value: Any, owner: Any = None) -> bool:
        """Store value; returns False (and drops the key) when it exceeds the size cap."""
        self._keys.add(key)
        entry = {"timestamp": self.clock(), "userId": _owner_id(owner), "data": value}
        encoded = json.dumps(entry, ensure_ascii=False, default=str)
        if len(encoded.encode("utf-8")) > self.max_bytes:
            logger.warning(f"Cache '{key}' value exceeds {self.max_bytes} bytes, not stored")
            self.store.remove(key)
            return False
        self.store.set(key, encoded)
        return True

    def invalidate(self, key: str) -> None:
        self.store.remove(key)

    def clear(self) -> None:
        for key in list(self._keys):
            self.store.remove(key)


def _owner_id(owner: Any) -> Optional[str]:
    return None if owner is None else str(owner)
