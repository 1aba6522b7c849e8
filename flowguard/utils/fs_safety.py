# flowguard/utils/fs_safety.py
"""
Path and size guards for everything the snapshot store writes.

validate_safe_path() must run before every mkdir and every write under the
backup root. estimate_size() is an approximation used for threshold decisions
only.
"""
from __future__ import annotations

import errno
import json
import math
import os
import stat
from dataclasses import dataclass
from typing import Any, Optional

import psutil

from flowguard.utils.io import PathLike


MB = 1024 * 1024

SIZE_LIMITS = {
    "WARN_THRESHOLD": 50 * MB,     # log a warning
    "HARD_LIMIT": 500 * MB,        # reject
    "STREAM_THRESHOLD": 10 * MB,   # incremental json.dump instead of one big string
}

SAMPLE_CHARS = 10_000
MAX_KEY_DEPTH = 10


@dataclass(frozen=True)
class PathCheck:
    safe: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.safe


def _abs(p: PathLike) -> str:
    # normpath, not realpath: links must stay visible to lstat below
    return os.path.normpath(os.path.abspath(os.fspath(p)))


def validate_safe_path(target: PathLike, allowed_root: PathLike) -> PathCheck:
    """
    Check that `target` lies under `allowed_root` and that neither the target
    nor its parent directory is a symbolic link. A missing target is fine.
    """
    resolved = _abs(target)
    root = _abs(allowed_root)

    try:
        inside = os.path.commonpath([resolved, root]) == root
    except ValueError:
        # different drives on Windows
        inside = False
    if not inside:
        return PathCheck(False, "Path outside allowed directory")

    try:
        st = os.lstat(resolved)
    except FileNotFoundError:
        st = None
    except OSError as e:
        return PathCheck(False, f"Cannot access path: {e.strerror or e}")

    if st is not None:
        if stat.S_ISLNK(st.st_mode):
            return PathCheck(False, "Symlinks are not allowed")
        if not (stat.S_ISREG(st.st_mode) or stat.S_ISDIR(st.st_mode)):
            return PathCheck(False, "Path is not a regular file or directory")

    parent = os.path.dirname(resolved)
    try:
        if stat.S_ISLNK(os.lstat(parent).st_mode):
            return PathCheck(False, "Parent directory is a symlink")
    except OSError as e:
        if e.errno not in (errno.ENOENT, errno.ENOTDIR):
            return PathCheck(False, f"Cannot access parent directory: {e.strerror or e}")
        # parent will be created

    return PathCheck(True)


def _count_keys(obj: Any, depth: int = 0) -> int:
    if depth > MAX_KEY_DEPTH or not isinstance(obj, (dict, list, tuple)):
        return 0
    values = obj.values() if isinstance(obj, dict) else obj
    count = len(obj)
    for v in values:
        if isinstance(v, (dict, list, tuple)):
            count += _count_keys(v, depth + 1)
    return count


def estimate_size(value: Any) -> int:
    """
    Approximate the serialized JSON size of `value` in bytes.

    Encoding is incremental and stops once SAMPLE_CHARS characters are
    produced; larger documents are extrapolated from their key count.
    """
    chunks = []
    produced = 0
    truncated = False
    for chunk in json.JSONEncoder(ensure_ascii=False, default=str).iterencode(value):
        chunks.append(chunk)
        produced += len(chunk)
        if produced >= SAMPLE_CHARS:
            truncated = True
            break

    sample = "".join(chunks)[:SAMPLE_CHARS]
    sample_size = len(sample.encode("utf-8"))
    if not truncated:
        return sample_size

    keys = _count_keys(value)
    return sample_size * max(1, math.ceil(keys / 100))


def available_disk_space(path: PathLike) -> Optional[int]:
    """
    Free bytes on the filesystem holding `path`, or None when unknown.

    Walks up to the nearest existing ancestor so a backup root that has not
    been created yet can still be measured.
    """
    existing = _abs(path)
    while not os.path.exists(existing):
        parent = os.path.dirname(existing)
        if parent == existing:
            return None
        existing = parent
    try:
        return psutil.disk_usage(existing).free
    except OSError:
        return None


def format_file_size(n_bytes: int) -> str:
    if n_bytes < 1024:
        return f"{n_bytes}B"
    if n_bytes < MB:
        return f"{n_bytes / 1024:.1f}KB"
    return f"{n_bytes / MB:.1f}MB"
