"""Adjacency-indexed view over a flow definition's graph.

Graph JSON, as saved by the designer:

    {
        "nodes": [
            {"id": "start", "type": "START", "data": {"label": "Start"}},
            {"id": "mgr", "type": "APPROVAL", "data": {"label": "Manager"}},
            ...
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "mgr"},
            {"id": "e2", "source": "cond", "target": "big",
             "data": {"condition": {"field": "amount", "operator": "gt", "value": 1000}}},
            ...
        ]
    }

A node's kind is read from ``data.nodeType`` first, then from ``type``.
The graph is indexed once per load; outgoing edges keep their declared
order, which decides which CONDITION branch wins.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from core.constants import NodeKind
from core.exceptions import ValidationError


@dataclass(frozen=True)
class GraphNode:
    id: str
    kind: NodeKind
    label: str = ""


@dataclass(frozen=True)
class GraphEdge:
    id: str
    source: str
    target: str
    condition: Optional[dict] = None


@dataclass
class FlowGraph:
    """Validated, indexed flow graph."""

    nodes: dict[str, GraphNode]
    edges: list[GraphEdge]
    _outgoing: dict[str, list[GraphEdge]] = field(default_factory=dict, repr=False)
    _start_id: Optional[str] = None

    @classmethod
    def from_dict(cls, graph: Optional[dict]) -> "FlowGraph":
        """Parse and validate graph JSON.

        Raises:
            ValidationError: unknown node kind, missing or duplicate START
                node, or an edge pointing at a node that does not exist.
        """
        graph = graph or {}
        raw_nodes = graph.get("nodes") or []
        raw_edges = graph.get("edges") or []
        if not raw_nodes:
            raise ValidationError("Flow graph has no nodes")

        nodes: dict[str, GraphNode] = {}
        for raw in raw_nodes:
            node = _parse_node(raw)
            if node.id in nodes:
                raise ValidationError(f"Duplicate node id '{node.id}'")
            nodes[node.id] = node

        starts = [n.id for n in nodes.values() if n.kind is NodeKind.START]
        if not starts:
            raise ValidationError("Flow graph has no START node")
        if len(starts) > 1:
            raise ValidationError(f"Flow graph has {len(starts)} START nodes")

        edges: list[GraphEdge] = []
        outgoing: dict[str, list[GraphEdge]] = {node_id: [] for node_id in nodes}
        for index, raw in enumerate(raw_edges):
            edge = _parse_edge(raw, index)
            for endpoint in (edge.source, edge.target):
                if endpoint not in nodes:
                    raise ValidationError(
                        f"Edge '{edge.id}' references unknown node '{endpoint}'"
                    )
            edges.append(edge)
            outgoing[edge.source].append(edge)

        return cls(nodes=nodes, edges=edges, _outgoing=outgoing, _start_id=starts[0])

    @property
    def start_node(self) -> GraphNode:
        return self.nodes[self._start_id]

    def node(self, node_id: str) -> GraphNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise ValidationError(f"Node '{node_id}' is not part of the flow graph")

    def outgoing_edges(self, node_id: str) -> list[GraphEdge]:
        return list(self._outgoing.get(node_id, ()))

    def successors(self, node_id: str) -> list[GraphNode]:
        return [self.nodes[edge.target] for edge in self._outgoing.get(node_id, ())]

    def topological_order(self) -> list[GraphNode]:
        """Nodes in dependency order, ties broken by declaration order.

        Nodes on a cycle are appended at the end in declaration order.
        """
        order = list(self.nodes)
        in_degree = {node_id: 0 for node_id in order}
        for edge in self.edges:
            in_degree[edge.target] += 1

        queue = deque(node_id for node_id in order if in_degree[node_id] == 0)
        result: list[str] = []
        while queue:
            node_id = queue.popleft()
            result.append(node_id)
            for edge in self._outgoing[node_id]:
                in_degree[edge.target] -= 1
                if in_degree[edge.target] == 0:
                    queue.append(edge.target)

        seen = set(result)
        result.extend(node_id for node_id in order if node_id not in seen)
        return [self.nodes[node_id] for node_id in result]


def _parse_node(raw: dict) -> GraphNode:
    if not isinstance(raw, dict) or not raw.get("id"):
        raise ValidationError("Every node needs an id")
    data = raw.get("data") or {}
    kind_name = data.get("nodeType") or raw.get("type")
    try:
        kind = NodeKind(str(kind_name).upper())
    except ValueError:
        raise ValidationError(f"Node '{raw['id']}' has unknown kind '{kind_name}'")
    return GraphNode(id=str(raw["id"]), kind=kind, label=data.get("label") or "")


def _parse_edge(raw: dict, index: int) -> GraphEdge:
    if not isinstance(raw, dict) or not raw.get("source") or not raw.get("target"):
        raise ValidationError(f"Edge #{index} needs a source and a target")
    data = raw.get("data") or {}
    condition = data.get("condition") or raw.get("condition")
    return GraphEdge(
        id=str(raw.get("id") or f"edge_{index}"),
        source=str(raw["source"]),
        target=str(raw["target"]),
        condition=condition or None,
    )
