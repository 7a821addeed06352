"""Execution error taxonomy.

Fatal errors (subclasses of ExecutionError) halt a run at the failing node.
Parse failures in the dependency analyzer and unresolved context references
are recoverable and only ever logged.
"""

from __future__ import annotations

from typing import Optional


class ExecutionError(Exception):
    """Base class for errors that fail a node and halt the run."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        self.message = message
        self.node_id = node_id
        super().__init__(message)


class ConfigurationError(ExecutionError):
    """Raised when a node is missing required configuration."""
    pass


class RemoteCallError(ExecutionError):
    """Raised when a remote call fails or returns a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        node_id: Optional[str] = None,
    ):
        self.status_code = status_code
        super().__init__(message, node_id=node_id)


class ScriptExecutionError(ExecutionError):
    """Raised when a node's logic body fails to parse, raises, or times out."""
    pass
