"""Broadcast API."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from pushengine.api.dependencies import get_broadcast_orchestrator
from pushengine.models.broadcast import Broadcast
from pushengine.schemas.broadcast import (
    BroadcastCreate,
    BroadcastCreated,
    BroadcastResponse,
    BroadcastStats,
    criteria_from_filters,
)
from pushengine.services.broadcast_orchestrator import BroadcastOrchestrator

router = APIRouter(prefix="/api/v1/broadcasts", tags=["broadcasts"])


def to_response(broadcast: Broadcast) -> BroadcastResponse:
    """Build the API view of a broadcast, reassembling its target criteria."""
    return BroadcastResponse(
        id=broadcast.id,
        title=broadcast.title,
        body=broadcast.body,
        data=broadcast.data or {},
        target_criteria=criteria_from_filters(
            broadcast.target_user_ids, broadcast.target_device_types
        ),
        scheduled_for=broadcast.scheduled_for,
        status=broadcast.status,
        stats=BroadcastStats(
            total_targeted=broadcast.total_targeted,
            total_sent=broadcast.total_sent,
            total_failed=broadcast.total_failed,
        ),
        created_by=broadcast.created_by,
        created_at=broadcast.created_at,
        completed_at=broadcast.completed_at,
        error=broadcast.error,
    )


@router.post("", response_model=BroadcastCreated, status_code=status.HTTP_201_CREATED)
def create_broadcast(
    request: BroadcastCreate,
    orchestrator: Annotated[BroadcastOrchestrator, Depends(get_broadcast_orchestrator)],
) -> BroadcastCreated:
    """Create a broadcast. Broadcasts without a future schedule are sent right away."""
    broadcast = orchestrator.create(
        title=request.title,
        body=request.body,
        data=request.data,
        criteria=request.target_criteria,
        scheduled_for=request.scheduled_for,
        created_by=request.created_by,
    )
    return BroadcastCreated(
        broadcast_id=broadcast.id,
        scheduled_for=broadcast.scheduled_for,
        status=broadcast.status,
    )


@router.get("/{broadcast_id}", response_model=BroadcastResponse)
def get_broadcast(
    broadcast_id: int,
    orchestrator: Annotated[BroadcastOrchestrator, Depends(get_broadcast_orchestrator)],
) -> BroadcastResponse:
    """Get a broadcast with its delivery statistics."""
    return to_response(orchestrator.get(broadcast_id))
