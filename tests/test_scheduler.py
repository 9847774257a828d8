"""Tests for the scheduled Celery tasks."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

from celery.schedules import crontab

from pushengine.celery_app import app as celery_app
from pushengine.models.enums import BroadcastStatus
from pushengine.services.broadcast_orchestrator import BroadcastOrchestrator
from pushengine.services.endpoint_registry import EndpointRegistry
from pushengine.tasks.scheduler import (
    process_broadcast,
    process_due_broadcasts,
    run_broadcast_pickup,
    run_endpoint_cleanup,
    sweep_stale_endpoints,
)


def test_beat_schedule():
    """Cleanup runs daily at 02:00 UTC and pickup every minute."""
    schedule = celery_app.conf.beat_schedule

    assert schedule["sweep-stale-endpoints"]["schedule"] == crontab(hour=2, minute=0)
    assert schedule["process-due-broadcasts"]["schedule"] == 60.0


class TestBroadcastPickup:
    def test_processes_only_due_broadcasts(self, db, provider, settings, clock):
        EndpointRegistry(db, clock=clock).register("u1", "tok-1", "d1", "ios")
        orchestrator = BroadcastOrchestrator(db, provider, settings=settings, clock=clock)
        soon = orchestrator.create(
            "Soon", "B", created_by="admin", scheduled_for=clock.now + timedelta(minutes=5)
        )
        later = orchestrator.create(
            "Later", "B", created_by="admin", scheduled_for=clock.now + timedelta(hours=5)
        )

        clock.advance(minutes=10)
        result = run_broadcast_pickup(db, provider, settings=settings, clock=clock)

        assert result == {"found": 1, "processed": 1}
        db.refresh(soon)
        db.refresh(later)
        assert soon.status == BroadcastStatus.COMPLETED
        assert later.status == BroadcastStatus.SCHEDULED

    def test_overlapping_ticks_send_once(self, db, provider, settings, clock):
        """A second tick finds nothing left to do."""
        EndpointRegistry(db, clock=clock).register("u1", "tok-1", "d1", "ios")
        BroadcastOrchestrator(db, provider, settings=settings, clock=clock).create(
            "Soon", "B", created_by="admin", scheduled_for=clock.now + timedelta(minutes=1)
        )
        clock.advance(minutes=2)

        run_broadcast_pickup(db, provider, settings=settings, clock=clock)
        second = run_broadcast_pickup(db, provider, settings=settings, clock=clock)

        assert second == {"found": 0, "processed": 0}
        assert provider.sent_tokens == ["tok-1"]


class TestEndpointCleanup:
    def test_sweeps_old_inactive_endpoints(self, db, settings, clock):
        registry = EndpointRegistry(db, clock=clock)
        endpoint = registry.register("u1", "tok-1", "d1", "ios")
        registry.deactivate(endpoint.id)
        registry.register("u1", "tok-2", "d2", "ios")

        clock.advance(days=settings.endpoint_retention_days + 1)
        result = run_endpoint_cleanup(db, settings=settings, clock=clock)

        assert result == {"deleted": 1}
        assert registry.count() == 1


class TestCeleryTasks:
    def test_process_due_broadcasts_task(self, provider):
        """The task opens its own session and always closes it."""
        mock_db = MagicMock()
        with (
            patch("pushengine.tasks.scheduler.SessionLocal", return_value=mock_db),
            patch("pushengine.tasks.scheduler.get_push_provider", return_value=provider),
            patch(
                "pushengine.tasks.scheduler.run_broadcast_pickup",
                return_value={"found": 0, "processed": 0},
            ) as mock_pickup,
        ):
            result = process_due_broadcasts()

        assert result == {"found": 0, "processed": 0}
        mock_pickup.assert_called_once_with(mock_db, provider)
        mock_db.close.assert_called_once()

    def test_task_errors_are_returned(self):
        """A failing task reports the error instead of crashing the worker."""
        mock_db = MagicMock()
        with (
            patch("pushengine.tasks.scheduler.SessionLocal", return_value=mock_db),
            patch(
                "pushengine.tasks.scheduler.run_endpoint_cleanup",
                side_effect=RuntimeError("database is gone"),
            ),
        ):
            result = sweep_stale_endpoints()

        assert result == {"error": "database is gone"}
        mock_db.rollback.assert_called_once()
        mock_db.close.assert_called_once()

    def test_process_broadcast_task(self, provider):
        mock_db = MagicMock()
        with (
            patch("pushengine.tasks.scheduler.SessionLocal", return_value=mock_db),
            patch("pushengine.tasks.scheduler.get_push_provider", return_value=provider),
            patch.object(BroadcastOrchestrator, "process", return_value=None),
        ):
            result = process_broadcast(42)

        assert result == {"broadcast_id": 42, "processed": False}
        mock_db.close.assert_called_once()
