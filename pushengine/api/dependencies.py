"""FastAPI dependencies for the database, push provider and services."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from pushengine.config import get_settings
from pushengine.database import get_db
from pushengine.services.broadcast_orchestrator import BroadcastOrchestrator
from pushengine.services.dispatcher import BatchDispatcher
from pushengine.services.delivery_recorder import DeliveryRecorder
from pushengine.services.endpoint_registry import EndpointRegistry
from pushengine.services.notification_service import NotificationService, build_dispatcher
from pushengine.services.preference_filter import PreferenceFilter
from pushengine.services.push_provider import PushProvider, get_push_provider


def get_endpoint_registry(
    db: Annotated[Session, Depends(get_db)],
) -> EndpointRegistry:
    """Get endpoint registry for the request session."""
    return EndpointRegistry(db)


def get_preference_filter(
    db: Annotated[Session, Depends(get_db)],
) -> PreferenceFilter:
    """Get preference filter for the request session."""
    return PreferenceFilter(db, use_timezone=get_settings().quiet_hours_use_timezone)


def get_delivery_recorder(
    db: Annotated[Session, Depends(get_db)],
) -> DeliveryRecorder:
    """Get delivery recorder for the request session."""
    return DeliveryRecorder(db)


def get_notification_service(
    db: Annotated[Session, Depends(get_db)],
    provider: Annotated[PushProvider, Depends(get_push_provider)],
) -> NotificationService:
    """Get notification service with dependencies."""
    return NotificationService(db, provider)


def get_broadcast_orchestrator(
    db: Annotated[Session, Depends(get_db)],
    provider: Annotated[PushProvider, Depends(get_push_provider)],
) -> BroadcastOrchestrator:
    """Get broadcast orchestrator with dependencies."""
    return BroadcastOrchestrator(db, provider)


def get_token_validator(
    provider: Annotated[PushProvider, Depends(get_push_provider)],
) -> BatchDispatcher:
    """Get a dispatcher for dry-run token validation."""
    return build_dispatcher(provider, get_settings())
