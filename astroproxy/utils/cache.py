from __future__ import annotations
from collections import OrderedDict
import threading
from typing import Any, Hashable, Optional

_MISSING = object()

class LRUCache:
    """Thread-safe least-recently-used map with a hard capacity bound."""

    def __init__(self, capacity: int = 1024):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.store: "OrderedDict[Hashable, Any]" = OrderedDict()
        self.lock = threading.Lock()

    def get(self, key: Hashable, default: Optional[Any] = None):
        with self.lock:
            value = self.store.get(key, _MISSING)
            if value is _MISSING:
                return default
            self.store.move_to_end(key)
            return value

    def set(self, key: Hashable, value: Any):
        with self.lock:
            self.store[key] = value
            self.store.move_to_end(key)
            while len(self.store) > self.capacity:
                self.store.popitem(last=False)

    def __contains__(self, key: Hashable) -> bool:
        with self.lock:
            return key in self.store

    def __len__(self) -> int:
        with self.lock:
            return len(self.store)

    def clear(self) -> None:
        with self.lock:
            self.store.clear()
