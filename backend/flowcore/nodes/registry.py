"""Executor Registry for Workflow Nodes

Maps a node's ``type`` to the executor that runs it. Executors register
themselves with the :func:`register_executor` decorator; dispatch goes
through :func:`get_executor`, which falls back to the simulated executor
for any type nobody registered.

Key Components:
- ExecutorDefinition: Metadata for an executor type
- BaseExecutor: Abstract base for all executors
- register_executor: Decorator for registering executor types
- get_executor: Factory used by the orchestrator
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..engine.graph import WorkflowNode
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="BaseExecutor")
M = TypeVar("M", bound=BaseModel)

# Executor used for node types with no registration
FALLBACK_TYPE = "fallback"


@dataclass
class ExecutorDefinition:
    """Metadata definition for an executor type.

    Attributes:
        node_type: Node type handled (e.g., "http-request")
        display_name: Human-readable name for UI display
        description: Brief description of executor behavior
        input_schema: JSON schema describing the node's ``data``
    """

    node_type: str
    display_name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate executor definition after initialization."""
        if not self.node_type:
            raise ValueError("node_type cannot be empty")
        if not self.display_name:
            raise ValueError("display_name cannot be empty")
        if not isinstance(self.input_schema, dict):
            raise ValueError("input_schema must be a dictionary")

    @property
    def required_fields(self) -> List[str]:
        return list(self.input_schema.get("required", []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.node_type,
            "display_name": self.display_name,
            "description": self.description,
            "required": self.required_fields,
        }


class BaseExecutor(ABC):
    """Abstract base class for node executors.

    Subclasses implement :meth:`execute` and raise an ``ExecutionError``
    subclass on failure.
    """

    node_type: str = ""

    @abstractmethod
    async def execute(self, node: WorkflowNode, context: Dict[str, Any]) -> Any:
        """Run one node against its resolved dependency context.

        Args:
            node: The node being executed
            context: Mapping of label -> {"data": result}

        Returns:
            The node's result value
        """
        pass

    def validate_config(self, node: WorkflowNode) -> List[Dict[str, str]]:
        """Check the node's data against the registered required fields.

        Returns:
            List of validation errors, each with "field" and "error" keys.
            Empty list if validation passes.
        """
        errors = []

        definition = EXECUTOR_REGISTRY.get(self.node_type)
        if not definition:
            return errors

        for field_name in definition.required_fields:
            value = node.data.get(field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append({
                    "field": field_name,
                    "error": f"Required field '{field_name}' is missing"
                })

        return errors

    def parse_data(self, node: WorkflowNode, model: Type[M]) -> M:
        """Validate ``node.data`` into the executor's typed config model.

        Raises:
            ConfigurationError: If required fields are missing or malformed
        """
        errors = self.validate_config(node)
        if errors:
            raise ConfigurationError(errors[0]["error"], node_id=node.id)
        try:
            return model.model_validate(node.data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration for node {node.id}: {e.errors()[0]['msg']}",
                node_id=node.id,
            ) from e


# Global registry for executor types
EXECUTOR_REGISTRY: Dict[str, ExecutorDefinition] = {}
EXECUTOR_CLASSES: Dict[str, Type[BaseExecutor]] = {}


def register_executor(
    node_type: str,
    display_name: str,
    description: str,
    input_schema: Optional[Dict[str, Any]] = None,
) -> Callable[[Type[T]], Type[T]]:
    """Decorator to register an executor for a node type.

    Example:
        @register_executor(
            node_type="http-request",
            display_name="HTTP Request",
            description="Calls a remote JSON endpoint",
            input_schema={"type": "object", "required": ["url"]},
        )
        class HttpRequestExecutor(BaseExecutor):
            async def execute(self, node, context):
                ...
    """

    def decorator(cls: Type[T]) -> Type[T]:
        definition = ExecutorDefinition(
            node_type=node_type,
            display_name=display_name,
            description=description,
            input_schema=input_schema or {},
        )
        cls.node_type = node_type

        EXECUTOR_REGISTRY[node_type] = definition
        EXECUTOR_CLASSES[node_type] = cls

        logger.debug(f"Registered executor: {node_type} ({display_name})")

        return cls

    return decorator


def get_executor(node_type: str) -> BaseExecutor:
    """Instantiate the executor for ``node_type``.

    Unregistered types get the fallback executor.
    """
    executor_class = EXECUTOR_CLASSES.get(node_type)
    if executor_class is None:
        logger.debug(f"No executor for type '{node_type}', using {FALLBACK_TYPE}")
        executor_class = EXECUTOR_CLASSES[FALLBACK_TYPE]
    return executor_class()


def get_executor_definition(node_type: str) -> Optional[ExecutorDefinition]:
    return EXECUTOR_REGISTRY.get(node_type)


def list_executor_types() -> List[ExecutorDefinition]:
    """List all registered executor definitions."""
    return list(EXECUTOR_REGISTRY.values())


def is_executor_registered(node_type: str) -> bool:
    return node_type in EXECUTOR_CLASSES
