"""Graph Model for Workflow Execution

Typed representation of the editor's graph snapshot. Nodes carry an opaque
``data`` mapping (per-type configuration plus an optional ``label``); edges
are plain source/target pairs.

The snapshot is read-only to the core: nothing in the engine mutates a node's
data or the node/edge lists during a run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class WorkflowNode:
    """A unit of work in the workflow graph.

    Attributes:
        id: Unique node identifier
        type: Node type (selects the executor)
        data: Node-specific configuration, including an optional label
    """

    id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate node identity."""
        if not self.id:
            raise ValueError("node id cannot be empty")
        if self.data is None:
            self.data = {}

    @property
    def label(self) -> Optional[str]:
        """Human-readable label used by ``$node`` references, if any."""
        label = self.data.get("label")
        if isinstance(label, str) and label:
            return label
        return None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WorkflowNode":
        """Build a node from the editor's JSON shape (extra keys ignored)."""
        return cls(
            id=str(raw.get("id", "")),
            type=str(raw.get("type") or ""),
            data=dict(raw.get("data") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "data": self.data}


@dataclass
class WorkflowEdge:
    """A directed dependency: ``target`` runs no earlier than ``source``."""

    source: str
    target: str
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WorkflowEdge":
        return cls(
            source=str(raw.get("source", "")),
            target=str(raw.get("target", "")),
            id=raw.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"source": self.source, "target": self.target}
        if self.id is not None:
            result["id"] = self.id
        return result


NodeLike = Union[WorkflowNode, Mapping[str, Any]]
EdgeLike = Union[WorkflowEdge, Mapping[str, Any]]


def coerce_nodes(nodes: Iterable[NodeLike]) -> List[WorkflowNode]:
    """Accept model objects or editor dicts and return model objects."""
    return [n if isinstance(n, WorkflowNode) else WorkflowNode.from_dict(n) for n in nodes]


def coerce_edges(edges: Iterable[EdgeLike]) -> List[WorkflowEdge]:
    return [e if isinstance(e, WorkflowEdge) else WorkflowEdge.from_dict(e) for e in edges]


class WorkflowGraph:
    """Indexed view over a graph snapshot.

    Provides O(1) node lookup by id and iteration over edges in insertion
    order. Edges whose endpoints are not both present are kept in ``edges``
    but skipped by :meth:`iter_edges`.
    """

    def __init__(self, nodes: Iterable[NodeLike], edges: Iterable[EdgeLike] = ()):
        self.nodes: List[WorkflowNode] = coerce_nodes(nodes)
        self.edges: List[WorkflowEdge] = coerce_edges(edges)

        self._by_id: Dict[str, WorkflowNode] = {}
        for node in self.nodes:
            if node.id in self._by_id:
                logger.warning(f"Duplicate node id '{node.id}', keeping first occurrence")
                continue
            self._by_id[node.id] = node

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WorkflowGraph":
        """Build from ``{"nodes": [...], "edges": [...]}``."""
        return cls(raw.get("nodes") or [], raw.get("edges") or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return self._by_id.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def __len__(self) -> int:
        return len(self.nodes)

    def iter_edges(self) -> Iterator[WorkflowEdge]:
        """Yield edges whose source and target both exist, in insertion order."""
        for edge in self.edges:
            if edge.source in self._by_id and edge.target in self._by_id:
                yield edge
