# flowguard/utils/io.py
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml

# -------- Path helpers --------
PathLike = Union[str, Path]


def to_path(p: PathLike) -> Path:
    """Convert string-like to pathlib.Path."""
    return p if isinstance(p, Path) else Path(p)


def ensure_dir(p: PathLike) -> Path:
    """Ensure a directory exists and return it."""
    d = to_path(p)
    d.mkdir(parents=True, exist_ok=True)
    return d


def list_files(folder: PathLike, pattern: str = "*") -> list[Path]:
    """List files matching a glob pattern (non-recursive)."""
    return sorted(p for p in to_path(folder).glob(pattern) if p.is_file())


def temp_path_for(path: PathLike) -> Path:
    """Sibling temp file used for write-then-rename."""
    p = to_path(path)
    return p.with_name(p.name + ".tmp")


# -------- JSON / YAML --------
def read_json(path: PathLike) -> Any:
    """Load JSON file with UTF-8."""
    with to_path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(
    path: PathLike,
    data: Any,
    indent: int = 2,
    tmp: Optional[PathLike] = None,
    stream: bool = False,
) -> Path:
    """
    Write JSON atomically: dump into a temp file in the same directory, flush
    it to disk, then os.replace() it over the destination. Readers see either
    the previous file or the complete new one.

    With stream=True the document is encoded incrementally into the file
    instead of being built as one string first.
    """
    p = to_path(path)
    tmp_p = to_path(tmp) if tmp is not None else temp_path_for(p)
    try:
        with tmp_p.open("w", encoding="utf-8") as f:
            if stream:
                json.dump(data, f, ensure_ascii=False, indent=indent)
            else:
                f.write(json.dumps(data, ensure_ascii=False, indent=indent))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_p, p)
    except BaseException:
        try:
            tmp_p.unlink()
        except FileNotFoundError:
            pass
        raise
    return p


def read_yaml(path: PathLike) -> Any:
    """Load a YAML document."""
    with to_path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)
