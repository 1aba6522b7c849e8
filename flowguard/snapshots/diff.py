# flowguard/snapshots/diff.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from flowguard.errors import DuplicateNodeNameError, SnapshotError
from flowguard.snapshots.store import SnapshotStore
from flowguard.utils.logger import get_logger

logger = get_logger("diff")

NO_CHANGES = "No changes detected"


@dataclass
class WorkflowDiff:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    summary: str = NO_CHANGES
    connections_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.modified or self.connections_changed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": list(self.added),
            "removed": list(self.removed),
            "modified": list(self.modified),
            "summary": self.summary,
            "connectionsChanged": self.connections_changed,
        }


def _nodes_by_name(workflow: Mapping[str, Any]) -> Dict[str, Any]:
    by_name: Dict[str, Any] = {}
    duplicates: List[str] = []
    for n in workflow.get("nodes") or []:
        if not isinstance(n, Mapping) or not isinstance(n.get("name"), str):
            continue
        name = n["name"]
        if name in by_name and name not in duplicates:
            duplicates.append(name)
        by_name[name] = n
    if duplicates:
        raise DuplicateNodeNameError(duplicates)
    return by_name


def _summarize(added: List[str], removed: List[str], modified: List[str]) -> str:
    parts = []
    if added:
        parts.append(f"{len(added)} node(s) added")
    if removed:
        parts.append(f"{len(removed)} node(s) removed")
    if modified:
        parts.append(f"{len(modified)} node(s) modified")
    return ", ".join(parts) if parts else NO_CHANGES


def compare_workflows(before: Mapping[str, Any], after: Mapping[str, Any]) -> WorkflowDiff:
    """
    Node-level diff keyed by node name.

    Nodes are compared by value (nested dicts and lists compare
    structurally), so a moved node shows up as modified.
    """
    old = _nodes_by_name(before)
    new = _nodes_by_name(after)

    added = [name for name in new if name not in old]
    removed = [name for name in old if name not in new]
    modified = [name for name in old if name in new and old[name] != new[name]]

    return WorkflowDiff(
        added=added,
        removed=removed,
        modified=modified,
        summary=_summarize(added, removed, modified),
        connections_changed=(before.get("connections") or {}) != (after.get("connections") or {}),
    )


def _load_pair(store: SnapshotStore, workflow_id: str,
               backup_id_1: str, backup_id_2: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    with ThreadPoolExecutor(max_workers=2) as pool:
        f1 = pool.submit(store.load, workflow_id, backup_id_1)
        f2 = pool.submit(store.load, workflow_id, backup_id_2)
        return f1.result(), f2.result()


def diff_snapshots(store: SnapshotStore, workflow_id: str,
                   backup_id_1: str, backup_id_2: str) -> WorkflowDiff:
    """Diff two stored snapshots of one workflow (first is the older side)."""
    try:
        first, second = _load_pair(store, workflow_id, backup_id_1, backup_id_2)
        result = compare_workflows(first["workflow"], second["workflow"])
    except Exception as e:
        raise SnapshotError(
            f"Failed to compare backups {backup_id_1} and {backup_id_2}", e,
            workflow_id=str(workflow_id),
        ) from e
    logger.debug("diff %s %s..%s: %s", workflow_id, backup_id_1, backup_id_2, result.summary)
    return result
