"""Reporting Channel

The orchestrator reports progress through three one-way calls:

- ``on_node_status_change(node_id, status)``
- ``on_node_result(node_id, result)``
- ``on_execution_state_change(state)``

Observers may live on the other side of an isolation boundary, so every
payload is copied by value before it leaves the orchestrator. Two reporters
are provided:

- CallbackReporter: invokes an observer directly (sync or async callables)
- ChannelReporter: enqueues tagged ExecutionEvent messages; the observer
  side drains them with :func:`listen`

Both preserve emission order. Observer failures are logged and never reach
the orchestrator.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class NodeStatus(str, Enum):
    """Per-node execution status."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class RunState(str, Enum):
    """Global run state. PAUSED is reserved and never entered."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class EventKind(str, Enum):
    NODE_STATUS = "node_status"
    NODE_RESULT = "node_result"
    EXECUTION_STATE = "execution_state"


class ExecutionObserver(Protocol):
    """Observer contract. Methods may be plain or ``async``."""

    def on_node_status_change(self, node_id: str, status: str) -> Any:
        ...

    def on_node_result(self, node_id: str, result: Any) -> Any:
        ...

    def on_execution_state_change(self, state: str) -> Any:
        ...


@dataclass
class ExecutionEvent:
    """A tagged message crossing the reporting boundary."""

    kind: EventKind
    node_id: Optional[str] = None
    status: Optional[str] = None
    result: Any = None
    state: Optional[str] = None
    seq: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Dict[str, Any] = {"seq": self.seq, "timestamp": self.timestamp}
        if self.kind == EventKind.NODE_STATUS:
            data.update(node_id=self.node_id, status=self.status)
        elif self.kind == EventKind.NODE_RESULT:
            data.update(node_id=self.node_id, result=self.result)
        else:
            data.update(state=self.state)
        return data


class Reporter:
    """Base reporter: numbers events and copies payloads by value."""

    def __init__(self):
        self._seq = 0

    async def node_status(self, node_id: str, status: NodeStatus) -> None:
        await self.emit(self._event(EventKind.NODE_STATUS, node_id=node_id, status=NodeStatus(status).value))

    async def node_result(self, node_id: str, result: Any) -> None:
        await self.emit(self._event(EventKind.NODE_RESULT, node_id=node_id, result=copy.deepcopy(result)))

    async def execution_state(self, state: RunState) -> None:
        await self.emit(self._event(EventKind.EXECUTION_STATE, state=RunState(state).value))

    async def emit(self, event: ExecutionEvent) -> None:
        raise NotImplementedError

    def _event(self, kind: EventKind, **fields: Any) -> ExecutionEvent:
        self._seq += 1
        return ExecutionEvent(kind=kind, seq=self._seq, **fields)


class NullReporter(Reporter):
    """Discards all events."""

    async def emit(self, event: ExecutionEvent) -> None:
        return None


class CallbackReporter(Reporter):
    """Delivers events straight to an observer, in order."""

    def __init__(self, observer: Any):
        super().__init__()
        self._observer = observer

    async def emit(self, event: ExecutionEvent) -> None:
        await dispatch(self._observer, event)


class ChannelReporter(Reporter):
    """Enqueues events on an asyncio.Queue for a listener loop.

    ``close()`` enqueues a ``None`` sentinel that ends :func:`listen`.
    """

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        super().__init__()
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    async def emit(self, event: ExecutionEvent) -> None:
        self.queue.put_nowait(event)

    def close(self) -> None:
        self.queue.put_nowait(None)


async def dispatch(observer: Any, event: ExecutionEvent) -> None:
    """Invoke the observer method matching ``event``; log observer failures."""
    try:
        if event.kind == EventKind.NODE_STATUS:
            outcome = observer.on_node_status_change(event.node_id, event.status)
        elif event.kind == EventKind.NODE_RESULT:
            outcome = observer.on_node_result(event.node_id, event.result)
        else:
            outcome = observer.on_execution_state_change(event.state)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        # Log error but don't fail the run
        logger.error(f"Observer failed on {event.kind.value} event: {e}")


async def listen(queue: asyncio.Queue, observer: Any) -> int:
    """Observer-side listener loop.

    Drains ``queue`` in order, dispatching each event to ``observer`` until
    the ``None`` sentinel arrives.

    Returns:
        Number of events delivered
    """
    delivered = 0
    while True:
        event = await queue.get()
        if event is None:
            break
        await dispatch(observer, event)
        delivered += 1
    return delivered


class MappingObserver:
    """Adapts a dict of callbacks to the observer contract.

    Missing keys become no-ops.
    """

    def __init__(self, callbacks: Dict[str, Any]):
        self._callbacks = dict(callbacks)

    def _call(self, name: str, *args: Any) -> Any:
        callback = self._callbacks.get(name)
        if callback is None:
            return None
        return callback(*args)

    def on_node_status_change(self, node_id: str, status: str) -> Any:
        return self._call("on_node_status_change", node_id, status)

    def on_node_result(self, node_id: str, result: Any) -> Any:
        return self._call("on_node_result", node_id, result)

    def on_execution_state_change(self, state: str) -> Any:
        return self._call("on_execution_state_change", state)


def as_reporter(callbacks: Any) -> Reporter:
    """Turn ``None``, a callback dict, an observer or a reporter into a Reporter."""
    if callbacks is None:
        return NullReporter()
    if isinstance(callbacks, Reporter):
        return callbacks
    if isinstance(callbacks, dict):
        return CallbackReporter(MappingObserver(callbacks))
    return CallbackReporter(callbacks)
