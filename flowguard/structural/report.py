# flowguard/structural/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ERROR = "error"
WARNING = "warning"


@dataclass
class Finding:
    """One validation or lint result. `type` is a stable machine-readable tag."""
    type: str
    message: str
    severity: str = ERROR
    node_id: Optional[str] = None
    node_ids: Optional[List[str]] = None
    target_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
        }
        if self.node_id is not None:
            d["nodeId"] = self.node_id
        if self.node_ids is not None:
            d["nodeIds"] = list(self.node_ids)
        if self.target_id is not None:
            d["targetId"] = self.target_id
        return d


@dataclass
class ValidationReport:
    errors: List[Finding] = field(default_factory=list)
    warnings: List[Finding] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, type: str, message: str, **kw: Any) -> Finding:
        f = Finding(type, message, ERROR, **kw)
        self.errors.append(f)
        return f

    def warn(self, type: str, message: str, **kw: Any) -> Finding:
        f = Finding(type, message, WARNING, **kw)
        self.warnings.append(f)
        return f

    def types(self) -> List[str]:
        return [f.type for f in self.errors + self.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
        }
