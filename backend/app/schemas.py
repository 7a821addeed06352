"""Pydantic schemas for the workflow API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeRequest(BaseModel):
    """A node in the editor's graph snapshot. Layout keys are ignored."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    type: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)


class EdgeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: str
    target: str
    id: Optional[str] = None


class GraphRequest(BaseModel):
    """Request body for run and schedule endpoints."""
    nodes: List[NodeRequest] = Field(default_factory=list)
    edges: List[EdgeRequest] = Field(default_factory=list)

    def node_dicts(self) -> List[Dict[str, Any]]:
        return [n.model_dump() for n in self.nodes]

    def edge_dicts(self) -> List[Dict[str, Any]]:
        return [e.model_dump() for e in self.edges]


class RunStartedResponse(BaseModel):
    run_id: str
    status: str = "running"
    sequence: List[str]


class ScheduleResponse(BaseModel):
    sequence: List[str]
    unscheduled: List[str]


class DependenciesRequest(BaseModel):
    code: str = ""


class DependenciesResponse(BaseModel):
    labels: List[str]


class NodeTypeResponse(BaseModel):
    type: str
    display_name: str
    description: str
    required: List[str]
