"""Workflow execution engine."""

from .context import build_context, build_label_index
from .dependencies import extract_dependencies
from .graph import WorkflowEdge, WorkflowGraph, WorkflowNode
from .orchestrator import RunResult, WorkflowOrchestrator, run_workflow
from .reporting import (
    CallbackReporter,
    ChannelReporter,
    ExecutionEvent,
    ExecutionObserver,
    NodeStatus,
    RunState,
    listen,
)
from .scheduler import find_unscheduled, schedule

__all__ = [
    "CallbackReporter",
    "ChannelReporter",
    "ExecutionEvent",
    "ExecutionObserver",
    "NodeStatus",
    "RunResult",
    "RunState",
    "WorkflowEdge",
    "WorkflowGraph",
    "WorkflowNode",
    "WorkflowOrchestrator",
    "build_context",
    "build_label_index",
    "extract_dependencies",
    "find_unscheduled",
    "listen",
    "run_workflow",
    "schedule",
]
