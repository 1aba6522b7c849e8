# flowguard/locks.py
"""
Advisory locks on shared resources (typically credentials) held by in-flight
executions.

A lock never blocks anybody: destructive operations query it first and
refuse unless forced. Entries expire after `ttl` seconds; expired entries are
removed when a resource is queried, there is no background sweeper. State is
process-local and not persisted.
"""
from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Set, Tuple

from flowguard.errors import ResourceLockedError
from flowguard.utils.logger import get_logger

logger = get_logger("locks")

DEFAULT_LOCK_TTL = 15 * 60
DEFAULT_MAX_ENTRIES = 10_000


class ResourceLockManager:
    def __init__(self, ttl: float = DEFAULT_LOCK_TTL, max_entries: int = DEFAULT_MAX_ENTRIES,
                 clock: Optional[Callable[[], float]] = None):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._holders: Dict[str, Set[str]] = defaultdict(set)      # resource -> holders
        self._resources: Dict[str, Set[str]] = defaultdict(set)    # holder -> resources
        self._acquired_at: Dict[Tuple[str, str], float] = {}
        self._mutex = threading.RLock()

    # ---------- mutation ----------

    def acquire(self, resource_id: str, holder_id: str) -> None:
        with self._mutex:
            key = (resource_id, holder_id)
            if key not in self._acquired_at and len(self._acquired_at) >= self.max_entries:
                self._make_room()
            self._holders[resource_id].add(holder_id)
            self._resources[holder_id].add(resource_id)
            self._acquired_at[key] = self._clock()

    def release(self, resource_id: str, holder_id: str) -> None:
        with self._mutex:
            holders = self._holders.get(resource_id)
            if holders is not None:
                holders.discard(holder_id)
                if not holders:
                    del self._holders[resource_id]
            resources = self._resources.get(holder_id)
            if resources is not None:
                resources.discard(resource_id)
                if not resources:
                    del self._resources[holder_id]
            self._acquired_at.pop((resource_id, holder_id), None)

    def release_all(self, holder_id: str) -> None:
        """Drop every lock held by `holder_id` (e.g. when an execution finishes)."""
        with self._mutex:
            for resource_id in list(self._resources.get(holder_id, ())):
                self.release(resource_id, holder_id)

    def clear(self) -> None:
        with self._mutex:
            self._holders.clear()
            self._resources.clear()
            self._acquired_at.clear()

    # ---------- queries (purge stale entries first) ----------

    def is_locked(self, resource_id: str) -> bool:
        return bool(self.holders(resource_id))

    def holders(self, resource_id: str) -> List[str]:
        with self._mutex:
            self._purge_stale(resource_id)
            return sorted(self._holders.get(resource_id, ()))

    def lock_count(self, resource_id: str) -> int:
        return len(self.holders(resource_id))

    def active_locks(self) -> Dict[str, List[str]]:
        with self._mutex:
            for resource_id in list(self._holders):
                self._purge_stale(resource_id)
            return {r: sorted(h) for r, h in self._holders.items()}

    def ensure_unlocked(self, resource_id: str, force: bool = False) -> None:
        """Raise ResourceLockedError if `resource_id` has live holders, unless forced."""
        if force:
            return
        holders = self.holders(resource_id)
        if holders:
            raise ResourceLockedError(resource_id, holders)

    # ---------- internals ----------

    def _purge_stale(self, resource_id: str) -> None:
        now = self._clock()
        for holder_id in list(self._holders.get(resource_id, ())):
            ts = self._acquired_at.get((resource_id, holder_id))
            if ts is not None and now - ts > self.ttl:
                logger.warning("Cleaning up stale lock: %s:%s", resource_id, holder_id)
                self.release(resource_id, holder_id)

    def _make_room(self) -> None:
        for resource_id in list(self._holders):
            self._purge_stale(resource_id)
        while len(self._acquired_at) >= self.max_entries:
            (resource_id, holder_id), _ = min(self._acquired_at.items(), key=lambda kv: kv[1])
            logger.warning("Lock table full (%d entries), evicting %s:%s",
                           self.max_entries, resource_id, holder_id)
            self.release(resource_id, holder_id)
