# flowguard/structural/expressions.py
"""
Checks for the `{{ ... }}` micro-expressions embedded in node parameters.

This is a syntax screen, not an interpreter: it catches unbalanced
parentheses and references to variable roots that do not exist. Anything
that passes may still fail at runtime on the platform.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional

from flowguard.structural.report import ValidationReport
from flowguard.utils.graph import node_id_of

# Match {{ ... }} spans, newlines included, shortest first.
_EXPR_RE = re.compile(r"\{\{([\s\S]*?)\}\}")

# $identifier tokens; `$(...)` node accessors have no identifier and are ignored.
_VAR_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")

KNOWN_ROOTS = frozenset({
    "json", "node", "vars", "parameter", "now", "today", "workflow",
    "execution", "input", "binary", "env", "prevNode", "self",
    "itemIndex", "runIndex", "items", "position",
})

_COMPLEX_RE = re.compile(r"\b(if|for|while)\s*\(", re.IGNORECASE)

_UNSAFE_RE = re.compile(r"\b(eval|Function|setTimeout|setInterval)\s*\(")


@dataclass(frozen=True)
class ExpressionCheck:
    valid: bool
    error: Optional[str] = None


def extract_expressions(value: Any) -> List[str]:
    """All `{{ ... }}` bodies in a string, trimmed. Non-strings yield []."""
    if not isinstance(value, str):
        return []
    return [m.group(1).strip() for m in _EXPR_RE.finditer(value)]


def validate_expression(expression: str) -> ExpressionCheck:
    if not isinstance(expression, str) or not expression.strip():
        return ExpressionCheck(False, "Empty expression")

    depth = 0
    for ch in expression:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return ExpressionCheck(False, "Unbalanced parentheses")
    if depth != 0:
        return ExpressionCheck(False, "Unbalanced parentheses")

    for m in _VAR_RE.finditer(expression):
        if m.group(1) not in KNOWN_ROOTS:
            return ExpressionCheck(False, f"Invalid variable reference: ${m.group(1)}")

    return ExpressionCheck(True)


def _walk_strings(obj: Any) -> Iterator[str]:
    if isinstance(obj, str):
        yield obj
    elif isinstance(obj, Mapping):
        for v in obj.values():
            yield from _walk_strings(v)
    elif isinstance(obj, (list, tuple)):
        for v in obj:
            yield from _walk_strings(v)


def validate_workflow_expressions(workflow: Dict[str, Any]) -> ValidationReport:
    """
    Check every expression found in every node's parameters.

    Syntax problems are errors. Loop/branch logic inside an expression and
    calls that evaluate strings as code are warnings.
    """
    report = ValidationReport()
    if not isinstance(workflow, Mapping):
        report.error("missing_field", "Workflow must be a JSON object")
        return report
    nodes = workflow.get("nodes")
    if not isinstance(nodes, list):
        return report

    for node in nodes:
        nid = node_id_of(node)
        if nid is None:
            continue
        name = node.get("name") or nid
        for text in _walk_strings(node.get("parameters")):
            for expr in extract_expressions(text):
                check = validate_expression(expr)
                if not check.valid:
                    report.error(
                        "invalid_expression",
                        f"Node '{name}': Expression '{{{{ {expr} }}}}' has error: {check.error}",
                        node_id=nid,
                    )
                if _COMPLEX_RE.search(expr):
                    report.warn(
                        "complex_expression",
                        f"Node '{name}': Expression contains complex logic. "
                        "Consider using a Code node instead.",
                        node_id=nid,
                    )
                unsafe = _UNSAFE_RE.search(expr)
                if unsafe:
                    report.warn(
                        "unsafe_expression",
                        f"Node '{name}': Expression calls {unsafe.group(1)}(), "
                        "which evaluates strings as code.",
                        node_id=nid,
                    )
    return report
