# flowguard/advisor/suggest.py
from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from flowguard.advisor.lint import batch_size_of, is_loop_type
from flowguard.utils.graph import WorkflowGraph, build_graph, has_trigger, node_id_of

HIGH, MEDIUM, LOW = "high", "medium", "low"

SET_NODE_TYPE = "n8n-nodes-base.set"
CRITICAL_KEYS = ("database", "postgres", "mysql", "mongodb", "http", "email", "smtp")


@dataclass
class Suggestion:
    type: str
    title: str
    description: str
    priority: str
    node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
        }
        if self.node_id is not None:
            d["nodeId"] = self.node_id
        return d


@dataclass
class ImprovementResult:
    suggestions: List[Suggestion] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"suggestions": [s.to_dict() for s in self.suggestions], "summary": self.summary}


def _types(nodes) -> List[str]:
    return [str(n.get("type") or "") for n in nodes]


def _suggest_set_node(wf, nodes, graph):
    types = _types(nodes)
    if any("http" in t.lower() for t in types) and SET_NODE_TYPE not in types:
        yield Suggestion(
            "add_set_node",
            "Add Set node for data transformation",
            "HTTP responses often need data transformation. "
            "Consider adding a Set node to extract and format the data.",
            MEDIUM,
        )


def _suggest_error_handling(wf, nodes, graph):
    has_error_output = any(n.get("onError") == "continueErrorOutput" for n in nodes)
    critical = any(k in t.lower() for t in _types(nodes) for k in CRITICAL_KEYS)
    if critical and not has_error_output:
        yield Suggestion(
            "add_error_handling",
            "Add error handling workflow",
            "Critical operations (database, HTTP, email) should have error handling "
            "to prevent silent failures.",
            HIGH,
        )


def _suggest_loop_batching(wf, nodes, graph):
    for n in nodes:
        if not is_loop_type(n.get("type")):
            continue
        if (batch_size_of(n) or 1) == 1:
            yield Suggestion(
                "optimize_loop",
                f"Optimize loop in '{n.get('name')}'",
                "Processing items one by one is slow. Consider increasing batch size for better performance.",
                MEDIUM,
                node_id=node_id_of(n),
            )


def _suggest_credentials(wf, nodes, graph):
    for n in nodes:
        text = json.dumps(n.get("parameters") or {}, ensure_ascii=False, default=str)
        if "Authorization" in text and not n.get("credentials") and "{{" not in text:
            yield Suggestion(
                "use_credentials",
                f"Use credentials for '{n.get('name')}'",
                "Hardcoded authorization detected. Use credentials for better security and reusability.",
                HIGH,
                node_id=node_id_of(n),
            )


def _suggest_trigger(wf, nodes, graph):
    if wf.get("active") and not has_trigger(nodes):
        yield Suggestion(
            "add_trigger",
            "Add trigger node for active workflow",
            "Active workflows need a trigger to run automatically. "
            "Add a trigger node (Schedule, Webhook, etc.).",
            HIGH,
        )


def _suggest_merge(wf, nodes, graph: WorkflowGraph):
    fan_out = Counter((e.source, e.slot) for e in graph.edges if e.channel == "main")
    parallel = any(count > 1 for count in fan_out.values())
    has_merge = any("merge" in t.lower() for t in _types(nodes))
    if parallel and not has_merge:
        yield Suggestion(
            "add_merge",
            "Add Merge node for parallel branches",
            "Multiple parallel branches detected. Consider adding a Merge node to combine results.",
            MEDIUM,
        )


PASSES = (
    _suggest_set_node,
    _suggest_error_handling,
    _suggest_loop_batching,
    _suggest_credentials,
    _suggest_trigger,
    _suggest_merge,
)


def suggest_improvements(workflow: Dict[str, Any]) -> ImprovementResult:
    """Run every advisor pass and return the union of their suggestions."""
    raw_nodes = workflow.get("nodes") if isinstance(workflow, Mapping) else None
    nodes = [n for n in raw_nodes if node_id_of(n) is not None] if isinstance(raw_nodes, list) else []
    if not nodes:
        return ImprovementResult([], "No nodes to analyze")

    graph = build_graph(nodes, workflow.get("connections") or {})
    suggestions: List[Suggestion] = []
    for p in PASSES:
        suggestions.extend(p(workflow, nodes, graph))

    if not suggestions:
        return ImprovementResult([], "Workflow is well-optimized")

    counts = Counter(s.priority for s in suggestions)
    summary = (
        f"Found {len(suggestions)} suggestions: {counts[HIGH]} high, "
        f"{counts[MEDIUM]} medium, {counts[LOW]} low priority"
    )
    return ImprovementResult(suggestions, summary)
