# flowguard/structural/checker.py

from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional

from flowguard.errors import GraphDepthExceededError
from flowguard.platform import NodeTypeRegistry
from flowguard.structural.report import ValidationReport
from flowguard.structural.schema import first_error, node_validator
from flowguard.utils.graph import (
    DEFAULT_MAX_DEPTH,
    build_graph,
    detect_cycles,
    detect_multiple_input_connections,
    has_trigger,
    node_id_of,
    validate_connection_types,
    validate_connections,
)
from flowguard.utils.logger import get_logger

logger = get_logger("structural")


class StructureValidator:
    """
    Static checks run on a workflow before it is saved or activated.

    Findings go into a ValidationReport: errors block the save, warnings are
    informational. Nothing here raises for a bad workflow.
    """

    def __init__(self, node_types: Optional[NodeTypeRegistry] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH):
        self.node_types = node_types
        self.max_depth = max_depth

    def validate(self, workflow: Dict[str, Any]) -> ValidationReport:
        report = ValidationReport()

        if not isinstance(workflow, Mapping):
            report.error("missing_field", "Workflow must be a JSON object")
            return report

        # 1) Required fields
        if not workflow.get("name"):
            report.error("missing_field", "Workflow name is required")

        nodes = workflow.get("nodes")
        if not isinstance(nodes, list) or len(nodes) == 0:
            report.error("missing_field", "Workflow nodes are required")
            report.error("empty_workflow", "Workflow must have at least one node")
            return report

        connections = workflow.get("connections") or {}
        typed_nodes = [n for n in nodes if node_id_of(n) is not None]
        for i, n in enumerate(nodes):
            problem = first_error(node_validator, n)
            if problem:
                nid = node_id_of(n)
                report.warn("invalid_node", f"Node #{i} has an invalid shape: {problem}", node_id=nid)

        # 2) Node id uniqueness
        seen_ids = set()
        duplicate_ids: List[str] = []
        for n in typed_nodes:
            nid = node_id_of(n)
            if nid in seen_ids and nid not in duplicate_ids:
                duplicate_ids.append(nid)
            seen_ids.add(nid)
        if duplicate_ids:
            report.error(
                "duplicate_id",
                f"Duplicate node IDs found: {', '.join(duplicate_ids)}",
                node_ids=duplicate_ids,
            )

        # 3) Node name uniqueness (the platform keys nodes by name)
        by_name: "OrderedDict[str, List[str]]" = OrderedDict()
        for n in typed_nodes:
            name = n.get("name")
            if not isinstance(name, str) or not name:
                continue
            by_name.setdefault(name, []).append(node_id_of(n))
        for name, ids in by_name.items():
            if len(ids) > 1:
                report.error("duplicate_name", f"Node name '{name}' is duplicated", node_ids=ids)

        # 4) Node types known to the platform
        self._check_node_types(typed_nodes, report)

        # 5) Connections
        for issue in validate_connections(connections, seen_ids):
            report.error(
                "invalid_connection", issue.message,
                node_id=issue.source_id, target_id=issue.target_id,
            )
        for issue in validate_connection_types(connections):
            report.warn(
                "invalid_connection_type", issue.message,
                node_id=issue.source_id, target_id=issue.target_id,
            )
        types_by_id = {node_id_of(n): n.get("type") for n in typed_nodes}
        for w in detect_multiple_input_connections(connections, types_by_id):
            report.warn(
                "multiple_inputs",
                f"Node {w['targetId']} receives {w['connectionCount']} connections on "
                f"{w['inputType']}[{w['inputIndex']}]; later items may overwrite earlier ones",
                node_id=w["targetId"], node_ids=w["sources"],
            )

        # 6) Trigger presence for active workflows
        if workflow.get("active") and not has_trigger(typed_nodes):
            report.warn("missing_trigger", "Workflow needs at least one trigger node to be activated")

        # 7) Cycles
        graph = build_graph(typed_nodes, connections)
        try:
            if detect_cycles(graph, max_depth=self.max_depth):
                report.error("circular_dependency", "Circular dependency detected in workflow connections")
        except GraphDepthExceededError as e:
            report.error("graph_too_deep", str(e))

        # 8) Disabled nodes that still feed others
        for n in typed_nodes:
            nid = node_id_of(n)
            if n.get("disabled") and graph.G.out_degree(nid) > 0:
                report.warn(
                    "disabled_node",
                    f"Node '{n.get('name', nid)}' is disabled but has connections",
                    node_id=nid,
                )
        if all((not isinstance(n, Mapping)) or n.get("disabled") for n in nodes):
            report.warn("all_nodes_disabled", "All nodes are disabled - workflow won't execute")

        return report

    def _check_node_types(self, nodes: List[Dict[str, Any]], report: ValidationReport) -> None:
        if self.node_types is None:
            report.warn("node_types_check_failed", "Could not validate node types (no node type registry)")
            return
        try:
            known = self.node_types.known_types()
        except Exception as e:
            logger.warning("node type lookup failed: %s", e)
            report.warn("node_types_check_failed", "Could not validate node types (platform API unavailable)")
            return
        for n in nodes:
            if n.get("type") not in known:
                report.error(
                    "invalid_node_type",
                    f"Node type '{n.get('type')}' not found on this platform instance",
                    node_id=node_id_of(n),
                )


def validate_structure(
    workflow: Dict[str, Any],
    node_types: Optional[NodeTypeRegistry] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ValidationReport:
    return StructureValidator(node_types, max_depth=max_depth).validate(workflow)
