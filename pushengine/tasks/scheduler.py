"""Celery tasks for endpoint cleanup and broadcast pickup."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from pushengine.celery_app import app as celery_app
from pushengine.config import Settings, get_settings
from pushengine.database import SessionLocal
from pushengine.models.mixins import utcnow
from pushengine.services.broadcast_orchestrator import BroadcastOrchestrator
from pushengine.services.endpoint_registry import EndpointRegistry
from pushengine.services.push_provider import PushProvider, get_push_provider

logger = logging.getLogger(__name__)


def run_endpoint_cleanup(
    db: Session,
    settings: Settings | None = None,
    clock: Callable[[], datetime] | None = None,
) -> dict:
    """Delete endpoints that have been inactive past the retention period."""
    settings = settings or get_settings()
    registry = EndpointRegistry(db, clock=clock)
    deleted = registry.sweep_stale(timedelta(days=settings.endpoint_retention_days))
    return {"deleted": deleted}


def run_broadcast_pickup(
    db: Session,
    provider: PushProvider,
    settings: Settings | None = None,
    clock: Callable[[], datetime] | None = None,
) -> dict:
    """Process every scheduled broadcast that is due.

    Overlapping ticks are safe: a broadcast another tick already claimed is
    skipped by process().
    """
    clock = clock or utcnow
    orchestrator = BroadcastOrchestrator(db, provider, settings=settings, clock=clock)
    now = clock()
    due = orchestrator.due(now)

    processed = 0
    for broadcast_id in due:
        if orchestrator.process(broadcast_id) is not None:
            processed += 1

    if due:
        logger.info(f"Processed {processed}/{len(due)} due broadcasts at {now.isoformat()}")
    return {"found": len(due), "processed": processed}


@celery_app.task
def sweep_stale_endpoints() -> dict:
    """Daily retention sweep of inactive endpoints."""
    db: Session = SessionLocal()
    try:
        return run_endpoint_cleanup(db)
    except Exception as e:
        logger.error(f"Error sweeping stale endpoints: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}
    finally:
        db.close()


@celery_app.task
def process_due_broadcasts() -> dict:
    """Pick up scheduled broadcasts whose time has come.

    Runs every broadcast_poll_seconds via celery-beat.
    """
    db: Session = SessionLocal()
    try:
        return run_broadcast_pickup(db, get_push_provider())
    except Exception as e:
        logger.error(f"Error processing due broadcasts: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}
    finally:
        db.close()


@celery_app.task
def process_broadcast(broadcast_id: int) -> dict:
    """Process a single broadcast in the background."""
    db: Session = SessionLocal()
    try:
        orchestrator = BroadcastOrchestrator(db, get_push_provider())
        broadcast = orchestrator.process(broadcast_id)
        if broadcast is None:
            return {"broadcast_id": broadcast_id, "processed": False}
        return {
            "broadcast_id": broadcast_id,
            "processed": True,
            "status": broadcast.status.value,
            "total_sent": broadcast.total_sent,
            "total_failed": broadcast.total_failed,
        }
    except Exception as e:
        logger.error(f"Error processing broadcast {broadcast_id}: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}
    finally:
        db.close()
