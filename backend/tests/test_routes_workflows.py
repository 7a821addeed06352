"""Integration tests for the workflow API endpoints.

Uses httpx AsyncClient with ASGITransport; runs execute in-process with
zero fallback delay.
"""

from __future__ import annotations

import asyncio
import json
from typing import Dict, List

import pytest

from app.event_bus import EventBus, EventBusReporter, format_sse, is_final_event
from flowcore.engine.reporting import NodeStatus, RunState


def _parse_sse(body: str) -> List[Dict]:
    """Split an SSE body into {"event", "data"} dicts, skipping comments."""
    events = []
    for block in body.strip().split("\n\n"):
        lines = [l for l in block.splitlines() if l and not l.startswith(":")]
        if not lines:
            continue
        event = lines[0].split(": ", 1)[1]
        data = json.loads(lines[1].split(": ", 1)[1])
        events.append({"event": event, "data": data})
    return events


GRAPH = {
    "nodes": [
        {"id": "1", "type": "code", "position": {"x": 0, "y": 0},
         "data": {"label": "Fetch", "code": 'return {"x": 5}'}},
        {"id": "2", "type": "code", "position": {"x": 0, "y": 100},
         "data": {"code": 'return $node["Fetch"].data.x * 2'}},
    ],
    "edges": [{"id": "e1-2", "source": "1", "target": "2"}],
}


class TestHealthAndCatalog:

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_node_types(self, client):
        resp = await client.get("/api/node-types")
        assert resp.status_code == 200
        by_type = {item["type"]: item for item in resp.json()}
        assert by_type["http-request"]["required"] == ["url"]
        assert "code" in by_type
        assert "fallback" in by_type


class TestAnalysisEndpoints:

    @pytest.mark.asyncio
    async def test_schedule(self, client):
        resp = await client.post("/api/workflows/schedule", json=GRAPH)
        assert resp.status_code == 200
        assert resp.json() == {"sequence": ["1", "2"], "unscheduled": []}

    @pytest.mark.asyncio
    async def test_schedule_reports_cycle(self, client):
        graph = {
            "nodes": [{"id": "a"}, {"id": "b"}],
            "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
        }
        resp = await client.post("/api/workflows/schedule", json=graph)
        assert resp.json() == {"sequence": [], "unscheduled": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_dependencies(self, client):
        resp = await client.post(
            "/api/workflows/dependencies",
            json={"code": 'a = $node["Zed"].data\nb = $node.Alpha.data'},
        )
        assert resp.status_code == 200
        assert resp.json() == {"labels": ["Alpha", "Zed"]}

    @pytest.mark.asyncio
    async def test_dependencies_unparseable(self, client):
        resp = await client.post("/api/workflows/dependencies", json={"code": "return ("})
        assert resp.json() == {"labels": []}

    @pytest.mark.asyncio
    async def test_empty_node_id_rejected(self, client):
        resp = await client.post("/api/workflows/schedule", json={"nodes": [{"id": ""}]})
        assert resp.status_code == 422


class TestRunAndStream:

    @pytest.mark.asyncio
    async def test_run_then_stream(self, client):
        resp = await client.post("/api/workflows/run", json=GRAPH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "running"
        assert body["sequence"] == ["1", "2"]

        stream = await client.get(f"/api/workflows/runs/{body['run_id']}/stream")
        assert stream.status_code == 200
        assert stream.headers["content-type"].startswith("text/event-stream")

        events = _parse_sse(stream.text)
        assert events[0] == {
            "event": "execution_state",
            "data": {**events[0]["data"], "state": "running"},
        }
        assert events[-1]["event"] == "execution_state"
        assert events[-1]["data"]["state"] == "idle"

        results = {
            e["data"]["node_id"]: e["data"]["result"]
            for e in events if e["event"] == "node_result"
        }
        assert results == {"1": {"x": 5}, "2": 10}
        assert all(e["data"]["run_id"] == body["run_id"] for e in events)
        assert [e["data"]["seq"] for e in events] == list(range(1, len(events) + 1))

    @pytest.mark.asyncio
    async def test_failed_run_stream_ends_idle(self, client):
        graph = {
            "nodes": [
                {"id": "h", "type": "http-request", "data": {}},
                {"id": "n", "type": "task", "data": {}},
            ],
            "edges": [{"source": "h", "target": "n"}],
        }
        resp = await client.post("/api/workflows/run", json=graph)
        run_id = resp.json()["run_id"]

        events = _parse_sse((await client.get(f"/api/workflows/runs/{run_id}/stream")).text)
        statuses = [
            (e["data"]["node_id"], e["data"]["status"])
            for e in events if e["event"] == "node_status"
        ]
        assert statuses == [("h", "running"), ("h", "error")]
        assert events[-1]["data"]["state"] == "idle"

    @pytest.mark.asyncio
    async def test_stream_unknown_run_is_404(self, client):
        resp = await client.get("/api/workflows/runs/no-such-run/stream")
        assert resp.status_code == 404
        assert "no-such-run" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_set_result_streamed_as_list(self, client):
        graph = {"nodes": [{"id": "s", "type": "code", "data": {"code": "return {3, 1, 2}"}}], "edges": []}
        run_id = (await client.post("/api/workflows/run", json=graph)).json()["run_id"]

        events = _parse_sse((await client.get(f"/api/workflows/runs/{run_id}/stream")).text)
        results = [e["data"]["result"] for e in events if e["event"] == "node_result"]
        assert results == [[1, 2, 3]]


class TestEventBus:

    @pytest.mark.asyncio
    async def test_buffered_events_flushed_and_stream_closes(self):
        bus = EventBus()
        reporter = EventBusReporter(bus, "run-1")
        await reporter.execution_state(RunState.RUNNING)
        await reporter.node_status("a", NodeStatus.RUNNING)
        await reporter.execution_state(RunState.IDLE)

        chunks = [chunk async for chunk in bus.subscribe("run-1")]

        assert len(chunks) == 3
        assert chunks[-1].startswith("event: execution_state")

    def test_buffer_limit_keeps_final_event(self):
        bus = EventBus(buffer_max_events=1)
        bus.push("r", "node_status", {"node_id": "a", "status": "running"})
        bus.push("r", "node_status", {"node_id": "a", "status": "success"})
        bus.push("r", "execution_state", {"state": "idle"})

        buffered = bus._buffers["r"]["events"]
        assert [e["event"] for e in buffered] == ["node_status", "execution_state"]

    def test_is_final_event(self):
        assert is_final_event({"event": "execution_state", "data": {"state": "idle"}})
        assert not is_final_event({"event": "execution_state", "data": {"state": "running"}})
        assert not is_final_event({"event": "node_status", "data": {"status": "idle"}})

    def test_format_sse(self):
        text = format_sse({"event": "node_status", "data": {"node_id": "1"}})
        assert text == 'event: node_status\ndata: {"node_id": "1"}\n\n'

    @pytest.mark.asyncio
    async def test_subscribe_unknown_run_ends_immediately(self):
        bus = EventBus()
        chunks = [chunk async for chunk in bus.subscribe("never-started")]
        assert chunks == []
        assert not bus.is_known("never-started")

    @pytest.mark.asyncio
    async def test_open_run_known_before_first_event(self):
        bus = EventBus()
        bus.open_run("r")
        assert bus.is_known("r")

        stream = bus.subscribe("r", keepalive_interval=0.01)
        first = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert first == ": keepalive\n\n"

        bus.push("r", "execution_state", {"state": "idle"})
        rest = [chunk async for chunk in stream]
        assert rest[-1].startswith("event: execution_state")
        assert not bus.is_known("r")

    @pytest.mark.asyncio
    async def test_stream_ends_when_run_finishes_without_final_event(self):
        bus = EventBus()
        bus.open_run("r")

        async def consume():
            return [chunk async for chunk in bus.subscribe("r", keepalive_interval=0.01)]

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.03)
        bus.finish_run("r")
        chunks = await asyncio.wait_for(task, timeout=1)

        assert all(chunk == ": keepalive\n\n" for chunk in chunks)
        assert not bus.is_known("r")

    @pytest.mark.asyncio
    async def test_expired_buffer_forgets_run(self):
        bus = EventBus(buffer_max_age_secs=-1)
        bus.push("old", "execution_state", {"state": "running"})
        bus.push("old", "execution_state", {"state": "idle"})
        bus.push("new", "execution_state", {"state": "running"})

        assert not bus.is_known("old")
        assert [chunk async for chunk in bus.subscribe("old")] == []
