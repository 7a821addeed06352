"""Execution Orchestrator

Drives one run of a workflow graph: schedules it, walks the sequence one
node at a time, resolves each node's ``$node`` dependencies into a context,
dispatches to the node's executor and reports progress.

State machine:
    idle -> running            on run start
    running -> idle            when the sequence completes
    running -> idle            on the first node failure (run halts)

Per node:
    (none) -> running -> success | error

Nodes after a failure are never started and keep no status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .. import nodes as _nodes  # noqa: F401  (registers built-in executors)
from ..errors import ExecutionError
from ..nodes.registry import BaseExecutor, get_executor
from .context import build_context, build_label_index
from .dependencies import extract_dependencies
from .graph import EdgeLike, NodeLike, WorkflowGraph, WorkflowNode
from .reporting import NodeStatus, NullReporter, Reporter, RunState, as_reporter
from .scheduler import find_unscheduled, schedule_graph

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one run.

    Attributes:
        sequence: Execution order computed for the run
        statuses: Final status per started node
        results: Result per successful node
        failed_node: ID of the node that halted the run, if any
        error: Error message from the failing node
        unscheduled: Nodes left out of the sequence by a cycle
    """

    sequence: List[str] = field(default_factory=list)
    statuses: Dict[str, str] = field(default_factory=dict)
    results: Dict[str, Any] = field(default_factory=dict)
    failed_node: Optional[str] = None
    error: Optional[str] = None
    unscheduled: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "statuses": self.statuses,
            "results": self.results,
            "failed_node": self.failed_node,
            "error": self.error,
            "unscheduled": self.unscheduled,
        }


class WorkflowOrchestrator:
    """Runs workflow graphs sequentially.

    Holds the state of the most recent run. Calling :meth:`run` again
    resets it.

    Args:
        executors: Optional per-type executor overrides. Types not listed
            are dispatched through the registry.
    """

    def __init__(self, executors: Optional[Dict[str, BaseExecutor]] = None):
        self._executors = dict(executors or {})
        self.result_store: Dict[str, Any] = {}
        self.statuses: Dict[str, NodeStatus] = {}
        self.run_state: RunState = RunState.IDLE
        self.label_index: Dict[str, str] = {}

    async def run(
        self,
        nodes: Iterable[NodeLike],
        edges: Iterable[EdgeLike],
        reporter: Optional[Reporter] = None,
    ) -> RunResult:
        """Execute every schedulable node in order, halting on first failure.

        Args:
            nodes: Graph nodes (model objects or editor dicts)
            edges: Graph edges (model objects or editor dicts)
            reporter: Progress sink. Defaults to discarding events.

        Returns:
            RunResult describing the run

        Raises:
            ValueError: If the graph snapshot is malformed (e.g. empty node id)
        """
        reporter = reporter or NullReporter()
        graph = WorkflowGraph(nodes, edges)

        self.result_store = {}
        self.statuses = {}
        await self._set_run_state(RunState.RUNNING, reporter)

        sequence = schedule_graph(graph)
        unscheduled = find_unscheduled(graph.nodes, sequence)
        if unscheduled:
            logger.warning(
                f"Graph contains a cycle; {len(unscheduled)} node(s) will not run: {unscheduled}"
            )
        self.label_index = build_label_index(graph.nodes)

        result = RunResult(sequence=list(sequence), unscheduled=unscheduled)
        logger.info(f"Starting run: {len(sequence)} node(s) scheduled")

        for node_id in sequence:
            node = graph.get_node(node_id)
            await self._set_status(node_id, NodeStatus.RUNNING, reporter)

            try:
                output = await self._execute_node(node)
                self.result_store[node_id] = output
                await reporter.node_result(node_id, output)
            except Exception as e:
                self.result_store.pop(node_id, None)
                if isinstance(e, ExecutionError):
                    if e.node_id is None:
                        e.node_id = node_id
                    message = e.message
                else:
                    message = f"{type(e).__name__}: {e}"
                logger.error(f"Node {node_id} failed: {message}")

                await self._set_status(node_id, NodeStatus.ERROR, reporter)
                await self._set_run_state(RunState.IDLE, reporter)
                result.failed_node = node_id
                result.error = message
                return self._finish(result)

            await self._set_status(node_id, NodeStatus.SUCCESS, reporter)
            logger.info(f"Node {node_id} completed")

        await self._set_run_state(RunState.IDLE, reporter)
        logger.info("Run completed")
        return self._finish(result)

    async def _execute_node(self, node: WorkflowNode) -> Any:
        code = node.data.get("code")
        labels = extract_dependencies(code) if isinstance(code, str) else set()
        context = build_context(labels, self.label_index, self.result_store)
        executor = self._executors.get(node.type) or get_executor(node.type)
        return await executor.execute(node, context)

    async def _set_status(self, node_id: str, status: NodeStatus, reporter: Reporter) -> None:
        self.statuses[node_id] = status
        await reporter.node_status(node_id, status)

    async def _set_run_state(self, state: RunState, reporter: Reporter) -> None:
        self.run_state = state
        await reporter.execution_state(state)

    def _finish(self, result: RunResult) -> RunResult:
        result.statuses = {node_id: status.value for node_id, status in self.statuses.items()}
        result.results = dict(self.result_store)
        return result


async def run_workflow(
    nodes: Iterable[NodeLike],
    edges: Iterable[EdgeLike],
    callbacks: Any = None,
    executors: Optional[Dict[str, BaseExecutor]] = None,
) -> RunResult:
    """Run a graph with a fresh orchestrator. Never raises.

    Args:
        nodes: Graph nodes (model objects or editor dicts)
        edges: Graph edges (model objects or editor dicts)
        callbacks: Observer object, dict of callbacks, or Reporter
        executors: Optional per-type executor overrides

    Returns:
        RunResult; ``error`` is set when the run halted or could not start
    """
    orchestrator = WorkflowOrchestrator(executors=executors)
    try:
        return await orchestrator.run(nodes, edges, as_reporter(callbacks))
    except Exception as e:
        logger.error(f"Run aborted: {type(e).__name__}: {e}")
        return RunResult(error=f"{type(e).__name__}: {e}")
