"""Fallback executor

Simulates work for node types with no dedicated executor: waits a fixed
delay, then reports a canned success payload. Never fails.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .. import settings
from ..engine.graph import WorkflowNode
from .registry import FALLBACK_TYPE, BaseExecutor, register_executor


@register_executor(
    node_type=FALLBACK_TYPE,
    display_name="Simulated Step",
    description="Waits briefly and returns a timestamped success message",
)
class FallbackExecutor(BaseExecutor):

    def __init__(self, delay: Optional[float] = None):
        self.delay = delay

    async def execute(self, node: WorkflowNode, context: Dict[str, Any]) -> Dict[str, Any]:
        delay = settings.FALLBACK_DELAY if self.delay is None else self.delay
        if delay > 0:
            await asyncio.sleep(delay)
        return {
            "executedAt": datetime.now(timezone.utc).isoformat(),
            "message": f"Node {node.id} executed successfully",
        }
