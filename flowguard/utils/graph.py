# flowguard/utils/graph.py
"""
Graph view of a workflow's connection map.

Raw `connections` are untrusted JSON:

    connections[<sourceNodeId>][<channel>] = [          # one list per output slot
        [ {"node": <targetId>, "type": "main", "index": 0}, ... ],   # fan-out of slot 0
        [ ... ],                                                     # slot 1
    ]

validate_connections() reports every malformed piece of that structure.
build_graph() keeps only well-formed edges between known nodes and is the
only input the graph algorithms (detect_cycles, orphan and fan-out checks)
accept.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

import networkx as nx

from flowguard.errors import GraphDepthExceededError

DEFAULT_MAX_DEPTH = 1000

# Node types that may receive several connections on the same input slot.
MULTI_INPUT_NODES = frozenset({
    "n8n-nodes-base.merge",
    "n8n-nodes-base.aggregate",
    "n8n-nodes-base.summarize",
    "n8n-nodes-base.itemLists",
    "n8n-nodes-base.compareDatasets",
})

VALID_CONNECTION_TYPES = frozenset({
    "main",
    "ai_agent",
    "ai_chain",
    "ai_document",
    "ai_embedding",
    "ai_languageModel",
    "ai_memory",
    "ai_outputParser",
    "ai_retriever",
    "ai_textSplitter",
    "ai_tool",
    "ai_vectorStore",
})

TRIGGER_KEYS = ("trigger", "webhook")


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    channel: str        # output channel key on the source, e.g. "main"
    slot: int           # output slot index on the source
    input_type: str     # edge "type" (channel on the target side)
    input_index: int


@dataclass
class ConnectionIssue:
    message: str
    source_id: Optional[str] = None
    target_id: Optional[str] = None


@dataclass
class WorkflowGraph:
    """Strict representation: unique node ids in declaration order + valid edges."""
    node_ids: List[str]
    G: nx.DiGraph
    edges: List[Edge] = field(default_factory=list)

    def orphans(self) -> List[str]:
        return [n for n in self.node_ids if self.G.degree(n) == 0]


# ---------- helpers ----------

def node_id_of(node: Any) -> Optional[str]:
    """Node id as a string, or None for entries without a usable id."""
    if not isinstance(node, Mapping):
        return None
    nid = node.get("id")
    if nid is None or isinstance(nid, bool) or nid == "":
        return None
    return str(nid)


def _is_index(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value >= 0
    if isinstance(value, float):
        return value.is_integer() and value >= 0
    return False


def is_valid_edge(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and isinstance(value.get("node"), str)
        and len(value["node"]) > 0
        and isinstance(value.get("type"), str)
        and _is_index(value.get("index"))
    )


def iter_edges(connections: Any) -> Iterator[Tuple[str, str, int, Any]]:
    """
    Yield (source_id, channel, slot, raw_edge) for every edge entry sitting in
    a well-shaped container. Edge contents are not checked here.
    """
    if not isinstance(connections, Mapping):
        return
    for source_id, outputs in connections.items():
        if not isinstance(outputs, Mapping):
            continue
        for channel, slots in outputs.items():
            if not isinstance(slots, list):
                continue
            for slot, fan_out in enumerate(slots):
                if not isinstance(fan_out, list):
                    continue
                for raw in fan_out:
                    yield str(source_id), str(channel), slot, raw


def is_trigger_type(node_type: Any) -> bool:
    t = str(node_type or "").lower()
    return any(k in t for k in TRIGGER_KEYS)


def has_trigger(nodes: Iterable[Any]) -> bool:
    return any(isinstance(n, Mapping) and is_trigger_type(n.get("type")) for n in nodes)


# ---------- graph construction ----------

def build_graph(nodes: Iterable[Any], connections: Any) -> WorkflowGraph:
    """Convert raw nodes/connections into a WorkflowGraph; invalid edges are dropped."""
    node_ids: List[str] = []
    seen: Set[str] = set()
    for n in nodes or []:
        nid = node_id_of(n)
        if nid is None or nid in seen:
            continue
        seen.add(nid)
        node_ids.append(nid)

    G = nx.DiGraph()
    G.add_nodes_from(node_ids)

    edges: List[Edge] = []
    for source_id, channel, slot, raw in iter_edges(connections):
        if source_id not in seen or not is_valid_edge(raw):
            continue
        target = raw["node"]
        if target not in seen:
            continue
        edge = Edge(source_id, target, channel, slot, raw["type"], int(raw["index"]))
        edges.append(edge)
        G.add_edge(source_id, target)

    return WorkflowGraph(node_ids=node_ids, G=G, edges=edges)


# ---------- algorithms ----------

def detect_cycles(graph: WorkflowGraph, max_depth: int = DEFAULT_MAX_DEPTH) -> bool:
    """
    Three-colour depth-first search over the valid edges.

    Returns True as soon as a back-edge (an edge into a node on the current
    path) is found; self-loops count. Raises GraphDepthExceededError when a
    path grows deeper than `max_depth`, which is not the same outcome as a
    cycle. Iterative, so the Python recursion limit is not involved.
    """
    G = graph.G
    visited: Set[str] = set()
    on_path: Set[str] = set()

    for root in graph.node_ids:
        if root in visited:
            continue
        visited.add(root)
        on_path.add(root)
        stack = [(root, iter(G.successors(root)))]

        while stack:
            node, children = stack[-1]
            descended = False
            for child in children:
                if child in on_path:
                    return True
                if child in visited:
                    continue
                depth = len(stack)
                if depth > max_depth:
                    raise GraphDepthExceededError(max_depth)
                visited.add(child)
                on_path.add(child)
                stack.append((child, iter(G.successors(child))))
                descended = True
                break
            if not descended:
                stack.pop()
                on_path.discard(node)

    return False


def validate_connections(connections: Any, node_ids: Set[str]) -> List[ConnectionIssue]:
    """Report every structural or referential problem in a connection map."""
    issues: List[ConnectionIssue] = []
    if not connections:
        return issues
    if not isinstance(connections, Mapping):
        issues.append(ConnectionIssue("Connections must be an object keyed by source node id"))
        return issues

    for source_id, outputs in connections.items():
        source_id = str(source_id)
        if source_id not in node_ids:
            issues.append(ConnectionIssue(
                f"Connection references non-existent source node: {source_id}", source_id))
            continue

        if not isinstance(outputs, Mapping):
            issues.append(ConnectionIssue(
                f"Invalid connection structure for node: {source_id}", source_id))
            continue

        for channel, slots in outputs.items():
            if not isinstance(slots, list):
                issues.append(ConnectionIssue(
                    f"Connection output type '{channel}' must be an array", source_id))
                continue

            for i, fan_out in enumerate(slots):
                if not isinstance(fan_out, list):
                    issues.append(ConnectionIssue(
                        f"Connection output[{i}] for type '{channel}' must be an array", source_id))
                    continue

                for raw in fan_out:
                    issue = _check_edge(raw, source_id, i, node_ids)
                    if issue is not None:
                        issues.append(issue)

    return issues


def _check_edge(raw: Any, source_id: str, slot: int, node_ids: Set[str]) -> Optional[ConnectionIssue]:
    if not isinstance(raw, Mapping):
        return ConnectionIssue(f"Invalid connection object in output[{slot}]", source_id)

    target = raw.get("node")
    if not isinstance(target, str) or not target:
        return ConnectionIssue(
            f"Invalid connection in output[{slot}] of {source_id}: target node must be a non-empty string",
            source_id)

    if not isinstance(raw.get("type"), str):
        return ConnectionIssue(
            f"Invalid connection to {target}: connection type must be a string", source_id, target)

    index = raw.get("index")
    if not _is_index(index):
        if isinstance(index, (int, float)) and not isinstance(index, bool) and index >= 0:
            msg = f"Connection index must be integer, got: {index}"
        else:
            msg = f"Invalid connection index: {index!r} (must be >= 0)"
        return ConnectionIssue(msg, source_id, target)

    if target not in node_ids:
        return ConnectionIssue(
            f"Connection references non-existent target node: {target}", source_id, target)
    return None


def detect_multiple_input_connections(
    connections: Any, node_types: Mapping[str, str]
) -> List[Dict[str, Any]]:
    """
    Inputs fed by more than one source on nodes that cannot merge them.
    `node_types` maps node id -> node type.
    """
    feeds: Dict[Tuple[str, str, int], List[str]] = defaultdict(list)
    for source_id, _channel, _slot, raw in iter_edges(connections):
        if not is_valid_edge(raw):
            continue
        feeds[(raw["node"], raw["type"], int(raw["index"]))].append(source_id)

    out: List[Dict[str, Any]] = []
    for (target_id, input_type, input_index), sources in feeds.items():
        if len(sources) < 2:
            continue
        if node_types.get(target_id) in MULTI_INPUT_NODES:
            continue
        out.append({
            "targetId": target_id,
            "inputType": input_type,
            "inputIndex": input_index,
            "connectionCount": len(sources),
            "sources": sources,
        })
    return out


def validate_connection_types(connections: Any) -> List[ConnectionIssue]:
    """Channels (output keys or edge types) outside VALID_CONNECTION_TYPES."""
    issues: List[ConnectionIssue] = []
    if not isinstance(connections, Mapping):
        return issues
    for source_id, outputs in connections.items():
        if not isinstance(outputs, Mapping):
            continue
        for channel in outputs:
            if channel not in VALID_CONNECTION_TYPES:
                issues.append(ConnectionIssue(
                    f"Unknown output type '{channel}' on node {source_id}", str(source_id)))
    for source_id, channel, _slot, raw in iter_edges(connections):
        if not isinstance(raw, Mapping):
            continue
        edge_type = raw.get("type", "main")
        if isinstance(edge_type, str) and edge_type not in VALID_CONNECTION_TYPES:
            issues.append(ConnectionIssue(
                f"Unknown connection type '{edge_type}' from {source_id}",
                source_id, raw.get("node") if isinstance(raw.get("node"), str) else None))
    return issues
