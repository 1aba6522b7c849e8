# flowguard/config.py
"""
Engine settings.

Resolution order: dataclass defaults, then a YAML file (explicit path or
$FLOWGUARD_CONFIG), then FLOWGUARD_<FIELD> environment variables, e.g.

    FLOWGUARD_BACKUP_ROOT=/var/lib/flowguard/backups
    FLOWGUARD_KEEP_LAST=20
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from flowguard.utils.fs_safety import MB
from flowguard.utils.io import PathLike, read_yaml

ENV_PREFIX = "FLOWGUARD_"
CONFIG_ENV = "FLOWGUARD_CONFIG"


@dataclass(frozen=True)
class FlowguardConfig:
    backup_root: Path = Path("./backups")
    keep_last: int = 10
    min_free_bytes: int = 100 * MB
    max_graph_depth: int = 1000
    lock_ttl_seconds: float = 15 * 60
    lock_max_entries: int = 10_000
    node_type_cache_ttl: float = 300.0
    node_type_cache_size: int = 8
    log_level: Optional[str] = None
    log_dir: Optional[Path] = None


_NON_NEGATIVE = {"keep_last", "min_free_bytes"}
_POSITIVE = {"max_graph_depth", "lock_ttl_seconds", "lock_max_entries",
             "node_type_cache_ttl", "node_type_cache_size"}


def _coerce(name: str, value: Any) -> Any:
    if name in ("backup_root", "log_dir"):
        return None if value is None else Path(str(value))
    if name == "log_level":
        return None if value is None else str(value).upper()

    kind = float if name in ("lock_ttl_seconds", "node_type_cache_ttl") else int
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for {name}: {value!r}")
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {name}: {value!r}") from None
    if name in _NON_NEGATIVE and number < 0:
        raise ValueError(f"{name} must be >= 0, got {number}")
    if name in _POSITIVE and number <= 0:
        raise ValueError(f"{name} must be > 0, got {number}")
    return number


def _apply(cfg: FlowguardConfig, values: Mapping[str, Any]) -> FlowguardConfig:
    known = {f.name for f in fields(FlowguardConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
    return replace(cfg, **{k: _coerce(k, v) for k, v in values.items()})


def _from_env(env: Mapping[str, str]) -> Dict[str, str]:
    out = {}
    for f in fields(FlowguardConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in env and env[key] != "":
            out[f.name] = env[key]
    return out


def load_config(path: Optional[PathLike] = None,
                env: Optional[Mapping[str, str]] = None) -> FlowguardConfig:
    env = os.environ if env is None else env
    cfg = FlowguardConfig()

    path = path or env.get(CONFIG_ENV)
    if path:
        data = read_yaml(path) or {}
        if not isinstance(data, Mapping):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        cfg = _apply(cfg, data)

    return _apply(cfg, _from_env(env))
