"""Workflow run, stream and analysis API endpoints."""

from __future__ import annotations

import asyncio
import uuid
from typing import Set

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from flowcore.engine.dependencies import extract_dependencies
from flowcore.engine.graph import WorkflowGraph
from flowcore.engine.orchestrator import run_workflow
from flowcore.engine.scheduler import find_unscheduled, schedule_graph
from flowcore.logging_config import get_logger

from ..event_bus import EventBusReporter, get_event_bus
from ..schemas import (
    DependenciesRequest,
    DependenciesResponse,
    GraphRequest,
    RunStartedResponse,
    ScheduleResponse,
)

logger = get_logger("api")

router = APIRouter(prefix="/api/workflows", tags=["workflows"])

# Strong references to in-flight runs
_running_tasks: Set[asyncio.Task] = set()


async def cancel_running_tasks() -> None:
    """Cancel in-flight runs (application shutdown)."""
    for task in list(_running_tasks):
        task.cancel()
    if _running_tasks:
        await asyncio.gather(*_running_tasks, return_exceptions=True)


async def _execute_run(run_id: str, request: GraphRequest) -> None:
    bus = get_event_bus()
    reporter = EventBusReporter(bus, run_id)
    try:
        result = await run_workflow(request.node_dicts(), request.edge_dicts(), reporter)
    finally:
        bus.finish_run(run_id)
    if result.error:
        logger.warning(f"Run {run_id} halted at {result.failed_node}: {result.error}")
    else:
        logger.info(f"Run {run_id} completed ({len(result.sequence)} nodes)")


@router.post("/run", response_model=RunStartedResponse)
async def start_run(request: GraphRequest):
    """Start a run in the background.

    Progress is available from ``GET /api/workflows/runs/{run_id}/stream``.
    """
    run_id = uuid.uuid4().hex
    sequence = schedule_graph(WorkflowGraph(request.node_dicts(), request.edge_dicts()))

    get_event_bus().open_run(run_id)
    task = asyncio.create_task(_execute_run(run_id, request))
    _running_tasks.add(task)
    task.add_done_callback(_running_tasks.discard)

    logger.info(f"Run {run_id} started with {len(request.nodes)} nodes")
    return RunStartedResponse(run_id=run_id, status="running", sequence=sequence)


@router.get("/runs/{run_id}/stream")
async def stream_run(run_id: str):
    """Stream a run's progress via SSE.

    Events:
    - node_status: {node_id, status}
    - node_result: {node_id, result}
    - execution_state: {state}; the stream closes after state "idle"

    Returns 404 for a run that was never started or whose events expired.
    """
    bus = get_event_bus()
    if not bus.is_known(run_id):
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    return StreamingResponse(
        bus.subscribe(run_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/schedule", response_model=ScheduleResponse)
async def preview_schedule(request: GraphRequest):
    """Return the execution order and any nodes a cycle keeps out of it."""
    graph = WorkflowGraph(request.node_dicts(), request.edge_dicts())
    sequence = schedule_graph(graph)
    return ScheduleResponse(sequence=sequence, unscheduled=find_unscheduled(graph.nodes, sequence))


@router.post("/dependencies", response_model=DependenciesResponse)
async def analyze_dependencies(request: DependenciesRequest):
    """Return the labels a logic body references, sorted."""
    return DependenciesResponse(labels=sorted(extract_dependencies(request.code)))
