"""Dependency Analyzer

Statically inspects a node's logic body for references to sibling-node
outputs written against the reserved identifier:

- ``$node["Label"]``  (subscript with a string literal)
- ``$node.Label``     (attribute access)

Only direct member access on the exact reserved identifier is recognized;
aliases (``n = $node``) and destructuring are not followed.

Logic bodies are often incomplete while being edited, so a parse failure
is a warning, never an exception.
"""

from __future__ import annotations

import ast
import logging
from typing import Optional, Set

from .sandbox import INTERNAL_IDENTIFIER, parse_logic

logger = logging.getLogger(__name__)


def extract_dependencies(source_text: str) -> Set[str]:
    """Return the distinct labels referenced through ``$node``.

    Args:
        source_text: Logic body text

    Returns:
        Set of referenced labels. Empty when the text does not parse.
    """
    if not source_text or not source_text.strip():
        return set()

    try:
        tree = parse_logic(source_text)
    except (SyntaxError, ValueError) as e:
        # ValueError covers source containing null bytes
        logger.warning(f"ParseWarning: could not parse logic body, assuming no dependencies: {e}")
        return set()

    labels: Set[str] = set()
    # ast.walk visits every node kind, including list- and node-valued fields
    for node in ast.walk(tree):
        label = _reference_label(node)
        if label is not None:
            labels.add(label)
    return labels


def _reference_label(node: ast.AST) -> Optional[str]:
    """Return the label if ``node`` is a direct ``$node`` member access."""
    if isinstance(node, ast.Subscript) and _is_reserved(node.value):
        key = node.slice
        if isinstance(key, ast.Constant) and isinstance(key.value, str):
            return key.value
        return None

    if isinstance(node, ast.Attribute) and _is_reserved(node.value):
        return node.attr

    return None


def _is_reserved(node: ast.AST) -> bool:
    return isinstance(node, ast.Name) and node.id == INTERNAL_IDENTIFIER
