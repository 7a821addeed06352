"""Execution Context Builder

Resolves the labels a node references to results already recorded in the
run's result store. Availability is best-effort: a label that does not
resolve, or whose node has not produced a result (later in the order, or
halted upstream), is left out of the context and only logged.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, Mapping

logger = logging.getLogger(__name__)


def build_label_index(nodes: Iterable[Any]) -> Dict[str, str]:
    """Map each node's human-readable label to its id.

    When two nodes share a label, the first in node-list order wins.
    Nodes without a label are not indexed.
    """
    index: Dict[str, str] = {}
    for node in nodes:
        label = node.label
        if label is None:
            continue
        if label in index:
            if index[label] != node.id:
                logger.warning(
                    f"Duplicate label '{label}' on node {node.id}; "
                    f"references resolve to {index[label]}"
                )
            continue
        index[label] = node.id
    return index


def build_context(
    dependency_labels: Iterable[str],
    label_index: Mapping[str, str],
    result_store: Mapping[str, Any],
) -> Dict[str, Dict[str, Any]]:
    """Assemble the ``$node`` mapping for one node.

    Args:
        dependency_labels: Labels found by the dependency analyzer
        label_index: Label -> node id
        result_store: Node id -> recorded result

    Returns:
        ``{label: {"data": result}}`` for every resolvable label. Results are
        deep-copied so a logic body cannot alter the stored value.
    """
    context: Dict[str, Dict[str, Any]] = {}
    for label in sorted(dependency_labels):
        node_id = label_index.get(label)
        if node_id is None:
            logger.info(f"UnresolvedDependency: no node labelled '{label}'")
            continue
        if node_id not in result_store:
            logger.info(
                f"UnresolvedDependency: '{label}' ({node_id}) has no result yet"
            )
            continue
        context[label] = {"data": copy.deepcopy(result_store[node_id])}
    return context
