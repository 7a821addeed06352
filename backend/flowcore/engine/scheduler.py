"""Topological Scheduler

Orders workflow nodes for strictly sequential execution using Kahn's
algorithm. Ties between simultaneously-ready nodes, including siblings
released by the same predecessor, are broken by the original node-list
order, so a given node ordering always yields the same sequence.

Nodes that sit on (or behind) a cycle never reach in-degree zero and are
left out of the sequence. The scheduler does not report this; callers that
want to warn about it can use :func:`find_unscheduled`.
"""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List

from .graph import EdgeLike, NodeLike, WorkflowGraph, coerce_nodes


def schedule(nodes: Iterable[NodeLike], edges: Iterable[EdgeLike]) -> List[str]:
    """Compute the execution sequence for a graph snapshot.

    Args:
        nodes: Nodes in editor order (model objects or dicts)
        edges: Edges in insertion order (model objects or dicts)

    Returns:
        List of node IDs in execution order. Shorter than the node list
        when the graph contains a cycle.
    """
    return schedule_graph(WorkflowGraph(nodes, edges))


def schedule_graph(graph: WorkflowGraph) -> List[str]:
    """Kahn's algorithm over an already-indexed graph. O(V + E log E)."""
    in_degree: Dict[str, int] = {}
    successors: Dict[str, List[str]] = {}
    for node in graph.nodes:
        if node.id not in in_degree:
            in_degree[node.id] = 0
            successors[node.id] = []

    # Only edges whose endpoints both exist contribute
    for edge in graph.iter_edges():
        in_degree[edge.target] += 1
        successors[edge.source].append(edge.target)

    # Successors released together enqueue in node-list order
    position = {node_id: index for index, node_id in enumerate(in_degree)}
    for targets in successors.values():
        targets.sort(key=position.__getitem__)

    # Seed in node-list order (dict preserves insertion order)
    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    sequence: List[str] = []

    while queue:
        node_id = queue.popleft()
        sequence.append(node_id)

        for successor in successors[node_id]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    return sequence


def find_unscheduled(nodes: Iterable[NodeLike], sequence: Iterable[str]) -> List[str]:
    """Return IDs of nodes missing from ``sequence``, in node-list order.

    A non-empty result means the graph has at least one cycle; the listed
    nodes are on it or downstream of it.
    """
    scheduled = set(sequence)
    missing: List[str] = []
    for node in coerce_nodes(nodes):
        if node.id not in scheduled and node.id not in missing:
            missing.append(node.id)
    return missing
