"""Node executors.

Importing this package registers every built-in executor.
"""

from . import code, fallback, http_request  # noqa: F401
from .registry import (
    EXECUTOR_CLASSES,
    EXECUTOR_REGISTRY,
    FALLBACK_TYPE,
    BaseExecutor,
    ExecutorDefinition,
    get_executor,
    get_executor_definition,
    is_executor_registered,
    list_executor_types,
    register_executor,
)

__all__ = [
    "EXECUTOR_CLASSES",
    "EXECUTOR_REGISTRY",
    "FALLBACK_TYPE",
    "BaseExecutor",
    "ExecutorDefinition",
    "get_executor",
    "get_executor_definition",
    "is_executor_registered",
    "list_executor_types",
    "register_executor",
]
