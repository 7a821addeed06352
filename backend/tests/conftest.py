"""Root conftest for engine and API tests.

Provides:
- Zero simulated delay for fallback nodes
- A recording observer that captures reported events in order
- An httpx AsyncClient bound to the FastAPI app (no network)
"""

from __future__ import annotations

from typing import Any, AsyncGenerator, List, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import flowcore.settings as settings


@pytest.fixture(autouse=True)
def no_fallback_delay(monkeypatch):
    """Fallback nodes complete immediately in tests."""
    monkeypatch.setattr(settings, "FALLBACK_DELAY", 0.0)


class RecordingObserver:
    """Observer that records every callback as a tuple."""

    def __init__(self):
        self.events: List[Tuple[Any, ...]] = []

    def on_node_status_change(self, node_id, status):
        self.events.append(("status", node_id, status))

    def on_node_result(self, node_id, result):
        self.events.append(("result", node_id, result))

    def on_execution_state_change(self, state):
        self.events.append(("state", state))

    def statuses(self, node_id) -> List[str]:
        return [e[2] for e in self.events if e[0] == "status" and e[1] == node_id]

    def states(self) -> List[str]:
        return [e[1] for e in self.events if e[0] == "state"]

    def results(self) -> dict:
        return {e[1]: e[2] for e in self.events if e[0] == "result"}


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the ASGI app."""
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
