# flowguard/errors.py
"""
Exception taxonomy.

Validation findings are never raised (see structural/report.py); the classes
below are reserved for conditions that stop an operation:

  InputError      malformed workflow id, bad backup id grammar
  IntegrityError  corrupted snapshot, missing snapshot, graph too deep
  ResourceError   disk space, payload size, unsafe path, locked resource
  SnapshotError   operation-level wrapper carrying workflow/backup ids
"""
from __future__ import annotations

import re
from typing import List, Optional


class FlowguardError(Exception):
    """Base class for every error raised by flowguard."""


# ---------- input errors ----------

class InputError(FlowguardError, ValueError):
    pass


class InvalidWorkflowIdError(InputError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Invalid workflow ID format: {workflow_id!r}")


class InvalidBackupIdError(InputError):
    def __init__(self, backup_id: str, reason: str = ""):
        self.backup_id = backup_id
        msg = f"Invalid backup ID format: {backup_id!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


# ---------- integrity errors ----------

class IntegrityError(FlowguardError):
    pass


class CorruptedSnapshotError(IntegrityError):
    pass


class SnapshotNotFoundError(IntegrityError, LookupError):
    def __init__(self, workflow_id: str, backup_id: str):
        self.workflow_id = workflow_id
        self.backup_id = backup_id
        super().__init__(f"Backup {backup_id} not found for workflow {workflow_id}")


class DuplicateNodeNameError(IntegrityError):
    def __init__(self, names: List[str]):
        self.names = names
        super().__init__(
            "Cannot diff workflows with duplicate node names: " + ", ".join(names)
        )


class GraphDepthExceededError(IntegrityError):
    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(
            f"Maximum graph depth ({max_depth}) exceeded - possible infinite loop"
        )


# ---------- resource errors ----------

class ResourceError(FlowguardError):
    pass


class InsufficientDiskSpaceError(ResourceError):
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient disk space for backup: need {required} bytes, "
            f"{available} available"
        )


class PayloadTooLargeError(ResourceError):
    def __init__(self, estimated: int, limit: int):
        self.estimated = estimated
        self.limit = limit
        super().__init__(
            f"Workflow too large for backup: ~{round(estimated / 1024 / 1024)}MB "
            f"(limit: {limit // (1024 * 1024)}MB)"
        )


class UnsafePathError(ResourceError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Unsafe backup path {path}: {reason}")


class ResourceLockedError(ResourceError):
    def __init__(self, resource_id: str, holders: List[str]):
        self.resource_id = resource_id
        self.holders = holders
        super().__init__(
            f"Resource {resource_id} is locked by {len(holders)} active holder(s): "
            f"{', '.join(holders)}. Use force=True to proceed anyway "
            "(may cause execution failures)."
        )


# ---------- operation wrapper ----------

class SnapshotError(FlowguardError):
    """Wraps any failure of a snapshot operation with its workflow/backup context."""

    def __init__(self, context: str, cause: BaseException,
                 workflow_id: Optional[str] = None, backup_id: Optional[str] = None):
        self.context = context
        self.cause = cause
        self.workflow_id = workflow_id
        self.backup_id = backup_id
        super().__init__(f"{context}: {redact(str(cause) or type(cause).__name__)}")


# ---------- message sanitizing ----------

_LONG_TOKEN_RE = re.compile(r"[a-zA-Z0-9]{32,}")
_KEY_VALUE_RE = re.compile(
    r"(x-n8n-api-key|authorization|api[_-]?key|token|password|secret)=[^&\s]+",
    re.IGNORECASE,
)
_BEARER_RE = re.compile(r"bearer\s+\S+", re.IGNORECASE)
_BASIC_RE = re.compile(r"basic\s+\S+", re.IGNORECASE)


def redact(message: str) -> str:
    """Mask credentials that may leak into error text coming from collaborators."""
    message = _LONG_TOKEN_RE.sub("[REDACTED]", message)
    message = _KEY_VALUE_RE.sub(r"\1=[REDACTED]", message)
    message = _BEARER_RE.sub("bearer [REDACTED]", message)
    message = _BASIC_RE.sub("basic [REDACTED]", message)
    return message
