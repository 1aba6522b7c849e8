# flowguard/snapshots/store.py
"""
Versioned snapshots of workflows on local disk.

Layout (the store owns everything under `root`):

    {root}/{workflowId}/{timestamp}_{nonce}.json

where `timestamp` is the UTC creation instant in ISO-8601 with ':' and '.'
replaced by '-', and `nonce` is 8 hex chars. The backup id

    backup_{workflowId}_{timestamp}_{nonce}

carries the same three parts, and parse_backup_id() is the only way a
backup id is turned back into a file path.

Files are written to a temp sibling and renamed into place, so a listing
never sees a half-written snapshot. Snapshot files are never modified after
the rename; they are only removed by rotate() or delete().
"""
from __future__ import annotations

import os
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from flowguard.errors import (
    CorruptedSnapshotError,
    FlowguardError,
    InsufficientDiskSpaceError,
    InvalidBackupIdError,
    InvalidWorkflowIdError,
    PayloadTooLargeError,
    SnapshotError,
    SnapshotNotFoundError,
    UnsafePathError,
)
from flowguard.platform import PlatformAPI
from flowguard.structural.schema import first_error, metadata_validator, snapshot_validator
from flowguard.utils.fs_safety import (
    MB,
    SIZE_LIMITS,
    available_disk_space,
    estimate_size,
    format_file_size,
    validate_safe_path,
)
from flowguard.utils.io import PathLike, ensure_dir, list_files, read_json, temp_path_for, to_path, write_json
from flowguard.utils.logger import get_logger

logger = get_logger("snapshots")

DEFAULT_KEEP_LAST = 10
DEFAULT_MIN_FREE_BYTES = 100 * MB
DISK_ESTIMATE_MARGIN = 1.2

WORKFLOW_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
BACKUP_ID_RE = re.compile(
    r"^backup_([A-Za-z0-9_-]+?)_(\d{4}-\d{2}-\d{2}T[0-9A-Za-z-]+?)_([a-f0-9]{8})$"
)


# ---------- ids ----------

def sanitize_workflow_id(workflow_id: Any) -> str:
    """Only [A-Za-z0-9_-] may reach the filesystem."""
    if not isinstance(workflow_id, str) or not WORKFLOW_ID_RE.match(workflow_id):
        raise InvalidWorkflowIdError(str(workflow_id))
    return workflow_id


@dataclass(frozen=True)
class BackupId:
    workflow_id: str
    timestamp: str
    nonce: str

    @property
    def file_name(self) -> str:
        return f"{self.timestamp}_{self.nonce}.json"

    def __str__(self) -> str:
        return f"backup_{self.workflow_id}_{self.timestamp}_{self.nonce}"


def parse_backup_id(backup_id: Any) -> BackupId:
    m = BACKUP_ID_RE.match(backup_id) if isinstance(backup_id, str) else None
    if not m:
        raise InvalidBackupIdError(str(backup_id))
    return BackupId(*m.groups())


def iso_millis(dt: datetime) -> str:
    """2026-02-11T10:00:00.000Z"""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def fs_timestamp(iso: str) -> str:
    return iso.replace(":", "-").replace(".", "-")


def _parse_iso(value: str) -> datetime:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ---------- records ----------

@dataclass
class SnapshotMetadata:
    backup_id: str
    workflow_id: str
    timestamp: str
    description: str
    size: str
    workflow_name: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backupId": self.backup_id,
            "workflowId": self.workflow_id,
            "timestamp": self.timestamp,
            "description": self.description,
            "size": self.size,
            "workflowName": self.workflow_name,
        }


@dataclass
class RestoreResult:
    restored: bool
    current_backup: Optional[SnapshotMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"restored": self.restored}
        if self.current_backup is not None:
            d["currentBackup"] = self.current_backup.to_dict()
        return d


def validate_snapshot_structure(data: Any) -> None:
    """A restorable snapshot has a metadata object and a workflow with a nodes array."""
    problem = first_error(snapshot_validator, data)
    if problem:
        raise CorruptedSnapshotError(f"Corrupted backup file: {problem}")


# ---------- store ----------

class SnapshotStore:
    def __init__(
        self,
        root: PathLike,
        platform: PlatformAPI,
        keep_last: int = DEFAULT_KEEP_LAST,
        min_free_bytes: int = DEFAULT_MIN_FREE_BYTES,
        clock: Optional[Callable[[], datetime]] = None,
        nonce_factory: Optional[Callable[[], str]] = None,
    ):
        if keep_last < 0:
            raise ValueError("keep_last must be >= 0")
        self.root = to_path(root)
        self.platform = platform
        self.keep_last = keep_last
        self.min_free_bytes = min_free_bytes
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._nonce = nonce_factory or (lambda: secrets.token_hex(4))

    # ----- paths -----

    def _guard(self, path: Path) -> None:
        check = validate_safe_path(path, self.root)
        if not check.safe:
            raise UnsafePathError(str(path), check.reason or "unknown reason")

    def _locate(self, workflow_id: str, backup_id: str) -> Path:
        sanitized = sanitize_workflow_id(workflow_id)
        bid = parse_backup_id(backup_id)
        if bid.workflow_id != sanitized:
            raise InvalidBackupIdError(backup_id, f"belongs to workflow {bid.workflow_id}")
        path = self.root / sanitized / bid.file_name
        self._guard(path)
        if not path.is_file():
            raise SnapshotNotFoundError(sanitized, backup_id)
        return path

    # ----- create -----

    def create(self, workflow_id: str, description: Optional[str] = None) -> SnapshotMetadata:
        """Snapshot the platform's current version of `workflow_id`."""
        try:
            sanitized = sanitize_workflow_id(workflow_id)
            workflow = self.platform.fetch_workflow(workflow_id)

            estimated = estimate_size(workflow)
            if estimated > SIZE_LIMITS["HARD_LIMIT"]:
                raise PayloadTooLargeError(estimated, SIZE_LIMITS["HARD_LIMIT"])
            if estimated > SIZE_LIMITS["WARN_THRESHOLD"]:
                logger.warning("Large workflow %s detected: ~%dMB, using streaming write",
                               workflow_id, round(estimated / MB))

            self._check_disk_space(estimated)

            iso = iso_millis(self._clock())
            bid = BackupId(sanitized, fs_timestamp(iso), self._nonce())

            workflow_dir = self.root / sanitized
            self._guard(workflow_dir)
            ensure_dir(workflow_dir)

            final_path = workflow_dir / bid.file_name
            tmp_path = temp_path_for(final_path)
            self._guard(tmp_path)
            self._guard(final_path)

            document = {
                "metadata": {
                    "backupId": str(bid),
                    "workflowId": workflow_id,
                    "timestamp": iso,
                    "description": description or "Manual backup",
                    "workflowName": workflow.get("name"),
                },
                "workflow": workflow,
            }
            write_json(final_path, document, tmp=tmp_path,
                       stream=estimated > SIZE_LIMITS["STREAM_THRESHOLD"])
            logger.info("Created snapshot %s (%s)", bid, final_path)

            self.rotate(sanitized)

            return SnapshotMetadata(
                backup_id=str(bid),
                workflow_id=workflow_id,
                timestamp=iso,
                description=document["metadata"]["description"],
                size=format_file_size(final_path.stat().st_size),
                workflow_name=workflow.get("name"),
            )
        except Exception as e:
            raise SnapshotError(f"Failed to back up workflow {workflow_id}", e,
                                workflow_id=str(workflow_id)) from e

    def _check_disk_space(self, estimated: int) -> None:
        available = available_disk_space(self.root)
        if available is None:
            logger.warning("Could not determine available disk space under %s, skipping check", self.root)
            return
        required = int(estimated * DISK_ESTIMATE_MARGIN) + self.min_free_bytes
        if available < required:
            raise InsufficientDiskSpaceError(required, available)

    # ----- read -----

    def get_metadata(self, path: PathLike) -> SnapshotMetadata:
        p = to_path(path)
        data = read_json(p)
        validate_snapshot_structure(data)
        meta = data["metadata"]
        problem = first_error(metadata_validator, meta)
        if problem:
            raise CorruptedSnapshotError(f"Corrupted backup metadata in {p.name}: {problem}")
        if parse_backup_id(meta["backupId"]).file_name != p.name:
            raise CorruptedSnapshotError(
                f"Backup id {meta['backupId']} does not match file name {p.name}")
        return SnapshotMetadata(
            backup_id=meta["backupId"],
            workflow_id=meta["workflowId"],
            timestamp=meta["timestamp"],
            description=meta.get("description", ""),
            size=format_file_size(os.stat(p).st_size),
            workflow_name=meta.get("workflowName"),
        )

    def list(self, workflow_id: str) -> List[SnapshotMetadata]:
        """All snapshots of a workflow, newest first. No directory means no snapshots."""
        try:
            sanitized = sanitize_workflow_id(workflow_id)
            workflow_dir = self.root / sanitized
            if not workflow_dir.is_dir():
                return []

            snapshots: List[SnapshotMetadata] = []
            for path in list_files(workflow_dir, "*.json"):
                try:
                    snapshots.append(self.get_metadata(path))
                except (OSError, ValueError, FlowguardError) as e:
                    logger.warning("Skipping unreadable snapshot %s: %s", path, e)

            snapshots.sort(key=lambda m: (_parse_iso(m.timestamp), m.backup_id), reverse=True)
            return snapshots
        except Exception as e:
            raise SnapshotError(f"Failed to list backups for workflow {workflow_id}", e,
                                workflow_id=str(workflow_id)) from e

    def load(self, workflow_id: str, backup_id: str) -> Dict[str, Any]:
        """Read and structurally validate one snapshot document."""
        path = self._locate(workflow_id, backup_id)
        try:
            data = read_json(path)
        except ValueError as e:
            raise CorruptedSnapshotError(f"Corrupted backup file {path.name}: {e}") from e
        validate_snapshot_structure(data)
        return data

    # ----- restore -----

    def restore(self, workflow_id: str, backup_id: str,
                auto_backup_current: bool = True) -> RestoreResult:
        """
        Push a snapshot back to the platform.

        The requested snapshot is read first, so the auto-backup's rotation
        cannot remove it. With auto_backup_current the platform's current
        version is snapshotted before the push; if that fails nothing is
        pushed. If the push fails the auto-backup stays as a recovery point.
        """
        try:
            document = self.load(workflow_id, backup_id)

            current = None
            if auto_backup_current:
                current = self.create(workflow_id, "Auto-backup before restore")

            self.platform.push_workflow(workflow_id, document["workflow"])
            logger.info("Restored workflow %s from %s", workflow_id, backup_id)
            return RestoreResult(restored=True, current_backup=current)
        except Exception as e:
            raise SnapshotError(f"Failed to restore workflow {workflow_id} from {backup_id}", e,
                                workflow_id=str(workflow_id), backup_id=str(backup_id)) from e

    # ----- delete / rotate -----

    def delete(self, workflow_id: str, backup_id: str) -> None:
        try:
            path = self._locate(workflow_id, backup_id)
            path.unlink()
            logger.info("Deleted snapshot %s", backup_id)
        except Exception as e:
            raise SnapshotError(f"Failed to delete backup {backup_id} of workflow {workflow_id}", e,
                                workflow_id=str(workflow_id), backup_id=str(backup_id)) from e

    def rotate(self, workflow_id: str, keep_last: Optional[int] = None) -> List[str]:
        """
        Delete the oldest snapshots beyond `keep_last`. Returns the deleted backup ids.

        A malformed workflow id or keep_last is raised. Listing and deletion
        failures are logged and skipped.
        """
        keep = self.keep_last if keep_last is None else keep_last
        if keep < 0:
            raise ValueError("keep_last must be >= 0")
        try:
            sanitize_workflow_id(workflow_id)
        except InvalidWorkflowIdError as e:
            raise SnapshotError(f"Failed to rotate backups for workflow {workflow_id}", e,
                                workflow_id=str(workflow_id)) from e

        deleted: List[str] = []
        try:
            snapshots = self.list(workflow_id)
            if len(snapshots) <= keep:
                return deleted

            for meta in snapshots[keep:]:
                try:
                    path = self._locate(workflow_id, meta.backup_id)
                    path.unlink()
                    deleted.append(meta.backup_id)
                except PermissionError as e:
                    logger.warning("Skipping locked backup file for %s: %s", meta.backup_id, e)
                except (OSError, FlowguardError) as e:
                    logger.warning("Failed to delete backup %s: %s", meta.backup_id, e)
        except SnapshotError as e:
            logger.error("Failed to rotate backups for workflow %s: %s", workflow_id, e)

        if deleted:
            logger.info("Rotated %d old snapshot(s) of workflow %s", len(deleted), workflow_id)
        return deleted
