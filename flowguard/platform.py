# flowguard/platform.py
"""
The remote automation platform as seen by flowguard.

Only four calls are needed; the HTTP client that implements them lives in
the calling layer.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Set, runtime_checkable

from flowguard.utils.cache import TTLCache
from flowguard.utils.logger import get_logger

logger = get_logger("platform")

Workflow = Dict[str, Any]


@runtime_checkable
class PlatformAPI(Protocol):
    def fetch_workflow(self, workflow_id: str) -> Workflow: ...

    def push_workflow(self, workflow_id: str, workflow: Workflow) -> Workflow: ...

    def list_node_types(self) -> List[Dict[str, Any]]: ...

    def list_credentials(self) -> List[Dict[str, Any]]: ...


class NodeTypeRegistry:
    """
    Set of node type names known to the platform, cached for `ttl` seconds.

    Lookup failures propagate so the caller can decide how to degrade; a
    failed lookup is never cached.
    """

    _KEY = "node_types"

    def __init__(self, platform: PlatformAPI, cache: Optional[TTLCache] = None):
        self.platform = platform
        self.cache = cache if cache is not None else TTLCache(max_size=8, ttl=300.0)

    def _load(self) -> Set[str]:
        types = self.platform.list_node_types()
        names = {t["name"] for t in types if isinstance(t, dict) and t.get("name")}
        logger.debug("loaded %d node types from platform", len(names))
        return names

    def known_types(self) -> Set[str]:
        return self.cache.get_or_load(self._KEY, self._load)

    def refresh(self) -> None:
        self.cache.invalidate(self._KEY)
