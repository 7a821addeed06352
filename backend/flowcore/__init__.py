"""Workflow execution core.

Subpackages:
- engine: Graph model, scheduling, dependency analysis, context injection,
  sandbox interpreter, orchestration, and the reporting channel
- nodes: Executor registry and per-type executors (http-request, code, fallback)
"""
