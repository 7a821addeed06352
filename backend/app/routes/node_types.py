"""Node type catalog endpoint."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter

from flowcore.nodes import list_executor_types

from ..schemas import NodeTypeResponse

router = APIRouter(prefix="/api/node-types", tags=["node-types"])


@router.get("", response_model=List[NodeTypeResponse])
async def get_node_types():
    """List registered executor types."""
    return [NodeTypeResponse(**definition.to_dict()) for definition in list_executor_types()]
