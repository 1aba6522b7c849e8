# flowguard/utils/cache.py
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Small in-memory cache with a fixed capacity and a per-entry time-to-live.

    Oldest entries are evicted first once `max_size` is reached. Meant to be
    created by the caller and handed to the components that need it.
    """

    def __init__(self, max_size: int = 128, ttl: float = 300.0,
                 clock: Optional[Callable[[], float]] = None):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._data: "OrderedDict[Hashable, Tuple[float, V]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return default
            stored_at, value = item
            if self._clock() - stored_at > self.ttl:
                del self._data[key]
                return default
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
            while len(self._data) >= self.max_size:
                self._data.popitem(last=False)
            self._data[key] = (self._clock(), value)

    def get_or_load(self, key: Hashable, loader: Callable[[], V]) -> V:
        """Return the cached value or call `loader`; loader errors propagate and nothing is cached."""
        sentinel = object()
        value = self.get(key, sentinel)
        if value is not sentinel:
            return value
        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        with self._lock:
            if key is None:
                self._data.clear()
            else:
                self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)
