# flowguard/advisor/lint.py
"""
Best-practice lint for workflows. Pure heuristics, no platform calls.

Every rule runs; the score drops 5 points per issue, floored at 0.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping

from flowguard.structural.report import ERROR, WARNING, Finding
from flowguard.utils.graph import build_graph, node_id_of

PENALTY_PER_ISSUE = 5
ERROR_HANDLING_MIN_NODES = 3

GENERIC_NAMES = frozenset({"Start", "Node", "HTTP Request", "Set", "Code", "IF", "Switch"})

SECRET_PATTERNS = (
    re.compile(r"api[_-]?key\s*[:=]", re.IGNORECASE),
    re.compile(r"password\s*[:=]", re.IGNORECASE),
    re.compile(r"secret\s*[:=]", re.IGNORECASE),
    re.compile(r"\btoken\s*[:=]", re.IGNORECASE),
)

# parameter names whose literal string value is a credential
SECRET_KEY_RE = re.compile(r"(api[_-]?key|password|secret|token)$", re.IGNORECASE)

LOOP_KEYS = ("loop", "split")


@dataclass
class LintResult:
    score: int
    issues: List[Finding] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary,
        }


def is_loop_type(node_type: Any) -> bool:
    t = str(node_type or "").lower()
    return any(k in t for k in LOOP_KEYS)


def batch_size_of(node: Mapping[str, Any]) -> Any:
    params = node.get("parameters") or {}
    if not isinstance(params, Mapping):
        return None
    options = params.get("options") or {}
    return params.get("batchSize") or (options.get("batchSize") if isinstance(options, Mapping) else None)


def has_error_handling(node: Mapping[str, Any]) -> bool:
    return bool(node.get("continueOnFail")) or node.get("onError") in (
        "continueRegularOutput", "continueErrorOutput",
    )


def _params_text(node: Mapping[str, Any]) -> str:
    return json.dumps(node.get("parameters") or {}, ensure_ascii=False, default=str)


def _secret_keys(obj: Any) -> Iterator[str]:
    """Names of parameters holding a literal (non-expression) value under a secret-looking key."""
    if isinstance(obj, Mapping):
        for k, v in obj.items():
            if (isinstance(k, str) and SECRET_KEY_RE.search(k)
                    and isinstance(v, str) and v.strip() and "{{" not in v):
                yield k
            yield from _secret_keys(v)
    elif isinstance(obj, list):
        for v in obj:
            yield from _secret_keys(v)


# ---------- rules ----------

def _orphaned_nodes(nodes, graph) -> List[Finding]:
    orphans = set(graph.orphans())
    return [
        Finding("orphaned_node", f"Node '{n.get('name')}' has no connections", WARNING, node_id=node_id_of(n))
        for n in nodes
        if node_id_of(n) in orphans
    ]


def _missing_error_handling(nodes, graph) -> List[Finding]:
    if len(nodes) <= ERROR_HANDLING_MIN_NODES or any(has_error_handling(n) for n in nodes):
        return []
    return [Finding(
        "no_error_handling",
        "No nodes have error handling configured. Consider adding continueOnFail or error workflows.",
        WARNING,
    )]


def _generic_names(nodes, graph) -> List[Finding]:
    return [
        Finding("generic_name", f"Node '{n.get('name')}' uses generic name. Consider renaming for clarity.",
                WARNING, node_id=node_id_of(n))
        for n in nodes
        if n.get("name") in GENERIC_NAMES
    ]


def _hardcoded_secrets(nodes, graph) -> List[Finding]:
    out = []
    for n in nodes:
        text = _params_text(n)
        if any(p.search(text) for p in SECRET_PATTERNS) or any(_secret_keys(n.get("parameters"))):
            out.append(Finding(
                "hardcoded_secret",
                f"Node '{n.get('name')}' may contain hardcoded secrets. "
                "Use credentials or environment variables instead.",
                ERROR, node_id=node_id_of(n),
            ))
    return out


def _unbounded_loops(nodes, graph) -> List[Finding]:
    return [
        Finding("loop_without_limit",
                f"Node '{n.get('name')}' is a loop without batch size limit. This may cause performance issues.",
                WARNING, node_id=node_id_of(n))
        for n in nodes
        if is_loop_type(n.get("type")) and not batch_size_of(n)
    ]


RULES = (
    _orphaned_nodes,
    _missing_error_handling,
    _generic_names,
    _hardcoded_secrets,
    _unbounded_loops,
)


def lint_workflow(workflow: Dict[str, Any]) -> LintResult:
    raw_nodes = workflow.get("nodes") if isinstance(workflow, Mapping) else None
    nodes = [n for n in raw_nodes if node_id_of(n) is not None] if isinstance(raw_nodes, list) else []
    if not nodes:
        return LintResult(score=100, issues=[], summary="No nodes to lint")

    graph = build_graph(nodes, workflow.get("connections") or {})
    issues: List[Finding] = []
    for rule in RULES:
        issues.extend(rule(nodes, graph))

    score = max(0, 100 - PENALTY_PER_ISSUE * len(issues))
    n_err = sum(1 for i in issues if i.severity == ERROR)
    n_warn = sum(1 for i in issues if i.severity == WARNING)
    summary = (
        "Workflow follows best practices"
        if not issues
        else f"Found {n_err} errors and {n_warn} warnings"
    )
    return LintResult(score=score, issues=issues, summary=summary)
