# flowguard/engine.py
"""
IntegrityEngine: the single entry point a calling layer (tool server, CLI,
job runner) talks to. It owns no logic of its own; every method delegates to
the component that implements it.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from flowguard.advisor.lint import LintResult, lint_workflow
from flowguard.advisor.suggest import ImprovementResult, suggest_improvements
from flowguard.config import FlowguardConfig, load_config
from flowguard.locks import ResourceLockManager
from flowguard.platform import NodeTypeRegistry, PlatformAPI
from flowguard.snapshots.diff import WorkflowDiff, diff_snapshots
from flowguard.snapshots.store import RestoreResult, SnapshotMetadata, SnapshotStore
from flowguard.structural.checker import StructureValidator
from flowguard.structural.credentials import validate_credentials
from flowguard.structural.expressions import validate_workflow_expressions
from flowguard.structural.report import ValidationReport
from flowguard.utils.cache import TTLCache
from flowguard.utils.logger import ROOT_LOGGER, get_logger, init_logger

logger = get_logger("engine")


class IntegrityEngine:
    def __init__(
        self,
        platform: PlatformAPI,
        store: SnapshotStore,
        locks: Optional[ResourceLockManager] = None,
        validator: Optional[StructureValidator] = None,
    ):
        self.platform = platform
        self.store = store
        self.locks = locks if locks is not None else ResourceLockManager()
        self.validator = validator if validator is not None else StructureValidator(NodeTypeRegistry(platform))

    @classmethod
    def from_config(cls, platform: PlatformAPI,
                    config: Optional[FlowguardConfig] = None) -> "IntegrityEngine":
        """Wire every component from a FlowguardConfig (loaded from file/env if omitted)."""
        cfg = config or load_config()
        level = logging.getLevelName(cfg.log_level) if cfg.log_level else None
        init_logger(ROOT_LOGGER, level=level if isinstance(level, int) else None, log_dir=cfg.log_dir)

        registry = NodeTypeRegistry(
            platform,
            TTLCache(max_size=cfg.node_type_cache_size, ttl=cfg.node_type_cache_ttl),
        )
        store = SnapshotStore(
            cfg.backup_root,
            platform,
            keep_last=cfg.keep_last,
            min_free_bytes=cfg.min_free_bytes,
        )
        locks = ResourceLockManager(ttl=cfg.lock_ttl_seconds, max_entries=cfg.lock_max_entries)
        validator = StructureValidator(registry, max_depth=cfg.max_graph_depth)
        logger.info("flowguard engine ready (backups under %s)", cfg.backup_root)
        return cls(platform, store, locks=locks, validator=validator)

    # ---------- snapshots ----------

    def create_snapshot(self, workflow_id: str, description: Optional[str] = None) -> SnapshotMetadata:
        return self.store.create(workflow_id, description)

    def list_snapshots(self, workflow_id: str) -> List[SnapshotMetadata]:
        return self.store.list(workflow_id)

    def restore_snapshot(self, workflow_id: str, backup_id: str,
                         auto_backup_current: bool = True) -> RestoreResult:
        return self.store.restore(workflow_id, backup_id, auto_backup_current)

    def diff_snapshots(self, workflow_id: str, backup_id_1: str, backup_id_2: str) -> WorkflowDiff:
        return diff_snapshots(self.store, workflow_id, backup_id_1, backup_id_2)

    def rotate_snapshots(self, workflow_id: str, keep_last: Optional[int] = None) -> List[str]:
        return self.store.rotate(workflow_id, keep_last)

    def delete_snapshot(self, workflow_id: str, backup_id: str) -> None:
        self.store.delete(workflow_id, backup_id)

    # ---------- validation ----------

    def validate_structure(self, workflow: Dict[str, Any]) -> ValidationReport:
        return self.validator.validate(workflow)

    def validate_expressions(self, workflow: Dict[str, Any]) -> ValidationReport:
        return validate_workflow_expressions(workflow)

    def validate_credentials(self, workflow: Dict[str, Any]) -> ValidationReport:
        return validate_credentials(workflow, self.platform)

    def lint(self, workflow: Dict[str, Any]) -> LintResult:
        return lint_workflow(workflow)

    def suggest_improvements(self, workflow: Dict[str, Any]) -> ImprovementResult:
        return suggest_improvements(workflow)

    # ---------- locks ----------

    def acquire_lock(self, resource_id: str, holder_id: str) -> None:
        self.locks.acquire(resource_id, holder_id)

    def release_lock(self, resource_id: str, holder_id: str) -> None:
        self.locks.release(resource_id, holder_id)

    def release_all_locks(self, holder_id: str) -> None:
        self.locks.release_all(holder_id)

    def is_locked(self, resource_id: str) -> bool:
        return self.locks.is_locked(resource_id)

    def holders(self, resource_id: str) -> List[str]:
        return self.locks.holders(resource_id)

    def ensure_unlocked(self, resource_id: str, force: bool = False) -> None:
        self.locks.ensure_unlocked(resource_id, force=force)
