"""Code executor

Evaluates a node's logic body in the sandbox interpreter. The body sees its
upstream results through ``$node["Label"].data``; the value of its final
expression (or its ``return``) becomes the node's result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import ItemsView, Iterator, KeysView, ValuesView
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from .. import settings
from ..engine.graph import WorkflowNode
from ..engine.sandbox import MAX_SEQUENCE_LENGTH, SandboxError, run_logic
from ..errors import ScriptExecutionError
from .registry import BaseExecutor, register_executor

logger = logging.getLogger(__name__)

# Grace period on top of the interpreter's own deadline
_THREAD_GRACE_SECS = 1.0

_SCALARS = (str, int, float, bool, type(None))


class UnserializableResult(TypeError):
    """Raised when a script result has no JSON form."""
    pass


def to_json_value(value: Any) -> Any:
    """Convert a script result to plain JSON data.

    Tuples, sets, dict views, ranges and finite iterators become lists;
    sets are sorted when their items allow it. Dict keys must be scalars
    and are converted to their JSON text (1 -> "1", True -> "true").

    Raises:
        UnserializableResult: If the value (or anything inside it) has no
            JSON form, e.g. a lambda
    """
    if isinstance(value, _SCALARS):
        return value

    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if not isinstance(key, _SCALARS):
                raise UnserializableResult(f"dict key of type {type(key).__name__} is not allowed")
            result[key if isinstance(key, str) else json.dumps(key)] = to_json_value(item)
        return result

    if isinstance(value, (set, frozenset)):
        items = [to_json_value(item) for item in value]
        try:
            return sorted(items)
        except TypeError:
            return items

    if isinstance(value, (list, tuple, range, KeysView, ValuesView, ItemsView)):
        return [to_json_value(item) for item in value]

    if isinstance(value, Iterator):
        items = []
        for item in value:
            if len(items) >= MAX_SEQUENCE_LENGTH:
                raise UnserializableResult("iterator result is too long")
            items.append(to_json_value(item))
        return items

    raise UnserializableResult(f"values of type {type(value).__name__} cannot be returned")


class CodeNodeData(BaseModel):
    """Typed view of a code node's data."""

    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    label: Optional[str] = None


@register_executor(
    node_type="code",
    display_name="Code",
    description="Runs a sandboxed script over upstream results",
    input_schema={
        "type": "object",
        "properties": {"code": {"type": "string"}},
        "required": [],
    },
)
class CodeExecutor(BaseExecutor):
    """Isolated-script executor.

    Args:
        timeout: Wall-clock limit in seconds. Defaults to SCRIPT_TIMEOUT.
        max_iterations: Loop budget. Defaults to SCRIPT_MAX_ITERATIONS.
    """

    def __init__(self, timeout: Optional[float] = None, max_iterations: Optional[int] = None):
        self._timeout = timeout
        self._max_iterations = max_iterations

    async def execute(self, node: WorkflowNode, context: Dict[str, Any]) -> Any:
        data = self.parse_data(node, CodeNodeData)
        if not data.code or not data.code.strip():
            return None

        timeout = settings.SCRIPT_TIMEOUT if self._timeout is None else self._timeout
        max_iterations = (
            settings.SCRIPT_MAX_ITERATIONS if self._max_iterations is None else self._max_iterations
        )

        def log(*args: Any) -> None:
            logger.info(f"[{node.id}] " + " ".join(str(a) for a in args))

        try:
            value = await asyncio.wait_for(
                asyncio.to_thread(
                    run_logic,
                    data.code,
                    context,
                    {"log": log},
                    max_iterations,
                    timeout,
                ),
                timeout=timeout + _THREAD_GRACE_SECS,
            )
        except SandboxError as e:
            raise ScriptExecutionError(str(e), node_id=node.id) from e
        except asyncio.TimeoutError as e:
            raise ScriptExecutionError(
                f"Script timed out after {timeout}s", node_id=node.id
            ) from e

        try:
            return to_json_value(value)
        except (UnserializableResult, RecursionError) as e:
            raise ScriptExecutionError(
                f"Script result is not JSON-serializable: {e}", node_id=node.id
            ) from e
