"""SSE Event Bus for real-time run updates.

Runs started through the API report through an EventBusReporter, which
pushes every execution event onto the bus under the run's id. Clients
subscribe via EventBus.subscribe(), an async generator of SSE strings.

Events published before a client connects are buffered and flushed on
subscribe. A stream closes after the final ``execution_state`` event with
state ``idle``. Subscribing to a run the bus does not know (never
opened, or finished and its buffer expired) ends the stream immediately.

Event Envelope:
  {
    "event": "node_status" | "node_result" | "execution_state",
    "data": {
      "run_id": "<run_id>",
      "seq": <n>,
      "timestamp": "<ISO 8601>",
      ...payload
    }
  }
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional, Set

from flowcore import settings
from flowcore.engine.reporting import EventKind, ExecutionEvent, Reporter, RunState
from flowcore.logging_config import get_logger

logger = get_logger("sse")


def is_final_event(event: Dict[str, Any]) -> bool:
    """True for the event that ends a run's stream."""
    return (
        event.get("event") == EventKind.EXECUTION_STATE.value
        and event.get("data", {}).get("state") == RunState.IDLE.value
    )


class EventBus:
    """Central event bus for SSE event management.

    Manages active SSE connections (queues), pre-connection event buffering,
    and provides push/subscribe interfaces.
    """

    def __init__(
        self,
        buffer_max_events: Optional[int] = None,
        buffer_max_age_secs: Optional[int] = None,
    ):
        self._streams: Dict[str, asyncio.Queue] = {}
        self._buffers: Dict[str, dict] = {}
        self._active_runs: Set[str] = set()
        self._buffer_max_events = (
            settings.EVENT_BUFFER_MAX if buffer_max_events is None else buffer_max_events
        )
        self._buffer_max_age_secs = (
            settings.EVENT_BUFFER_MAX_AGE_SECS if buffer_max_age_secs is None else buffer_max_age_secs
        )
        self._lock = asyncio.Lock()

    def open_run(self, run_id: str) -> None:
        """Mark a run as started so clients may subscribe before its first event."""
        self._active_runs.add(run_id)

    def finish_run(self, run_id: str) -> None:
        """Mark a run as ended. Buffered events stay available until consumed."""
        self._active_runs.discard(run_id)

    def is_known(self, run_id: str) -> bool:
        """True while a run is active or still has events to deliver."""
        return run_id in self._active_runs or run_id in self._buffers or run_id in self._streams

    def push(self, run_id: str, event_type: str, data: dict) -> None:
        """Push an event to a connected client or buffer it.

        Synchronous: in a single-threaded event loop the dict access has no
        yield points. The lock guards subscribe/cleanup, which do.

        Args:
            run_id: Run identifier
            event_type: Event type string (e.g. "node_status")
            data: Event payload dict (will be wrapped in envelope)
        """
        if "timestamp" not in data:
            data["timestamp"] = datetime.now(timezone.utc).isoformat()

        event = {"event": event_type, "data": data}
        if is_final_event(event):
            self.finish_run(run_id)

        queue = self._streams.get(run_id)
        if queue:
            queue.put_nowait(event)
            logger.debug(f"Event sent: {event_type} for {run_id}")
        else:
            self._buffer_event(run_id, event, event_type)

    async def subscribe(
        self,
        run_id: str,
        keepalive_interval: float = 30.0,
    ) -> AsyncGenerator[str, None]:
        """Subscribe to events for a run, yielding SSE-formatted strings.

        Creates a queue for this run_id, flushes any buffered events,
        then yields events as they arrive.

        Yields:
            SSE-formatted strings ("event: ...\\ndata: ...\\n\\n")
        """
        queue: asyncio.Queue = asyncio.Queue()

        # Atomically register stream and flush buffered events
        async with self._lock:
            if not self.is_known(run_id):
                logger.info(f"Subscribe to unknown run: {run_id}")
                return
            self._streams[run_id] = queue
            buf = self._buffers.pop(run_id, None)

        logger.info(f"Client subscribed: {run_id}")

        buffered = buf["events"] if buf else []
        if buffered:
            logger.info(f"Flushing {len(buffered)} buffered events for {run_id}")

        try:
            for event in buffered:
                yield format_sse(event)
                if is_final_event(event):
                    return

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=keepalive_interval)
                except asyncio.TimeoutError:
                    if run_id not in self._active_runs and queue.empty():
                        logger.info(f"Run {run_id} ended without a final event")
                        break
                    yield ": keepalive\n\n"
                    continue
                if event is None:  # Sentinel to stop
                    break
                yield format_sse(event)
                if is_final_event(event):
                    break
        finally:
            async with self._lock:
                self._streams.pop(run_id, None)
                self._buffers.pop(run_id, None)
            logger.info(f"Client unsubscribed: {run_id}")

    def close(self, run_id: str) -> None:
        """Stop an active subscription, if any."""
        queue = self._streams.get(run_id)
        if queue:
            queue.put_nowait(None)

    def _buffer_event(self, run_id: str, event: dict, event_type: str) -> None:
        """Buffer an event for a run that has no active subscriber yet."""
        if run_id not in self._buffers:
            self._cleanup_stale_buffers()
            self._buffers[run_id] = {
                "events": [],
                "created_at": time.monotonic(),
            }

        buf = self._buffers[run_id]
        if len(buf["events"]) < self._buffer_max_events or is_final_event(event):
            buf["events"].append(event)
            logger.debug(f"Event buffered ({len(buf['events'])}): {event_type} for {run_id}")
        else:
            logger.warning(
                f"Buffer full ({self._buffer_max_events}), dropping: {event_type} for {run_id}"
            )

    def _cleanup_stale_buffers(self) -> None:
        """Remove event buffers that are too old."""
        now = time.monotonic()
        stale = [
            rid
            for rid, buf in self._buffers.items()
            if now - buf["created_at"] > self._buffer_max_age_secs
        ]
        for rid in stale:
            removed = self._buffers.pop(rid, None)
            if removed:
                logger.info(
                    f"Cleaned up stale buffer for {rid} ({len(removed['events'])} events)"
                )


def format_sse(event: dict) -> str:
    """Format an event dict as an SSE string."""
    return f"event: {event['event']}\ndata: {json.dumps(event['data'], default=str)}\n\n"


class EventBusReporter(Reporter):
    """Publishes a run's execution events on the bus."""

    def __init__(self, bus: "EventBus", run_id: str):
        super().__init__()
        self._bus = bus
        self.run_id = run_id

    async def emit(self, event: ExecutionEvent) -> None:
        self._bus.push(self.run_id, event.kind.value, {"run_id": self.run_id, **event.to_dict()})


# --- Singleton ---

_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the global EventBus singleton."""
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus
