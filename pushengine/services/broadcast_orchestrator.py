"""Broadcast orchestration: scheduled -> processing -> completed | failed."""

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pushengine.config import Settings, get_settings
from pushengine.database import store_errors
from pushengine.exceptions import NotFoundError, PersistenceFault, StateConflict, ValidationError
from pushengine.models.broadcast import Broadcast
from pushengine.models.enums import BroadcastStatus, NotificationKind
from pushengine.models.mixins import utcnow
from pushengine.schemas.broadcast import AllEndpoints, TargetCriteria
from pushengine.services.delivery_recorder import DeliveryRecorder
from pushengine.services.dispatcher import DispatchOutcome, EndpointRef, chunked, snapshot
from pushengine.services.endpoint_registry import EndpointRegistry, parse_device_type
from pushengine.services.notification_service import build_dispatcher
from pushengine.services.push_provider import PushProvider

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BroadcastOrchestrator:
    """Drives a broadcast through its state machine.

    The scheduled -> processing transition is a single conditional UPDATE,
    so concurrent callers of process() for the same broadcast cannot both
    run it: the loser sees no row change and returns without doing anything.
    """

    def __init__(
        self,
        db: Session,
        provider: PushProvider,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.registry = EndpointRegistry(db, clock=self.clock)
        self.recorder = DeliveryRecorder(db, clock=self.clock)
        self.dispatcher = build_dispatcher(provider, self.settings)

    def create(
        self,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        criteria: TargetCriteria | None = None,
        scheduled_for: datetime | None = None,
        created_by: str | None = None,
    ) -> Broadcast:
        """Persist a broadcast; process it right away if it is already due."""
        if not title or not body or not created_by:
            raise ValidationError("Missing required fields: title, body, created_by")

        user_ids, device_types = (criteria or AllEndpoints()).filters()
        for device_type in device_types or []:
            parse_device_type(device_type)

        now = self.clock()
        scheduled_for = as_utc(scheduled_for) if scheduled_for else now

        broadcast = Broadcast(
            title=title,
            body=body,
            data=data or {},
            target_user_ids=user_ids,
            target_device_types=device_types,
            scheduled_for=scheduled_for,
            status=BroadcastStatus.SCHEDULED,
            created_by=created_by,
            created_at=now,
        )
        with store_errors(self.db, "create broadcast"):
            self.db.add(broadcast)
            self.db.commit()
            self.db.refresh(broadcast)
        logger.info(f"Broadcast {broadcast.id} created, scheduled for {scheduled_for.isoformat()}")

        if scheduled_for <= as_utc(now):
            self.process(broadcast.id)
            self.db.refresh(broadcast)

        return broadcast

    def get(self, broadcast_id: int) -> Broadcast:
        with store_errors(self.db, "load broadcast"):
            broadcast = self.db.query(Broadcast).filter(Broadcast.id == broadcast_id).first()
        if not broadcast:
            raise NotFoundError("Broadcast not found")
        return broadcast

    def due(self, now: datetime | None = None) -> list[int]:
        """IDs of scheduled broadcasts whose time has come."""
        now = now or self.clock()
        with store_errors(self.db, "find due broadcasts"):
            rows = (
                self.db.query(Broadcast.id)
                .filter(
                    Broadcast.status == BroadcastStatus.SCHEDULED,
                    Broadcast.scheduled_for <= now,
                )
                .order_by(Broadcast.scheduled_for, Broadcast.id)
                .all()
            )
        return [broadcast_id for (broadcast_id,) in rows]

    def claim(self, broadcast_id: int) -> None:
        """Atomically move a broadcast from scheduled to processing."""
        with store_errors(self.db, "claim broadcast"):
            claimed = (
                self.db.query(Broadcast)
                .filter(
                    Broadcast.id == broadcast_id,
                    Broadcast.status == BroadcastStatus.SCHEDULED,
                )
                .update({Broadcast.status: BroadcastStatus.PROCESSING}, synchronize_session=False)
            )
            self.db.commit()
        if not claimed:
            raise StateConflict(f"Broadcast {broadcast_id} is missing or not scheduled")

    def process(self, broadcast_id: int) -> Broadcast | None:
        """Send a scheduled broadcast to every endpoint it targets.

        Returns the finished broadcast, or None when there was nothing to do
        (already claimed elsewhere, finished, or the claim could not be made).
        Never raises.
        """
        try:
            self.claim(broadcast_id)
        except StateConflict:
            logger.debug(f"Broadcast {broadcast_id} not scheduled, skipping")
            return None
        except PersistenceFault:
            # Still scheduled; the next pickup tick will retry
            logger.error(f"Could not claim broadcast {broadcast_id}", exc_info=True)
            return None

        logger.info(f"Broadcast {broadcast_id} processing")
        try:
            return self._run(broadcast_id)
        except Exception as e:
            logger.error(f"Broadcast {broadcast_id} failed: {e}", exc_info=True)
            self._mark_failed(broadcast_id, e)
            return None

    def _run(self, broadcast_id: int) -> Broadcast:
        broadcast = self.db.query(Broadcast).filter(Broadcast.id == broadcast_id).one()

        endpoints = snapshot(
            self.registry.resolve_active(
                user_ids=broadcast.target_user_ids, device_types=broadcast.target_device_types
            )
        )
        title, body, data = broadcast.title, broadcast.body, dict(broadcast.data or {})
        broadcast.total_targeted = len(endpoints)
        broadcast.total_sent = 0
        broadcast.total_failed = 0
        self.db.commit()

        record_recipients = self.settings.record_broadcast_recipients
        if record_recipients:
            # Keep each user's endpoints together so they rarely straddle chunks
            endpoints = sorted(endpoints, key=lambda ref: ref.user_id)

        for number, chunk in enumerate(
            chunked(endpoints, self.settings.broadcast_chunk_size), start=1
        ):
            try:
                outcome = self.dispatcher.send(chunk, title, body, data)
            except Exception as e:
                logger.warning(f"Broadcast {broadcast_id} chunk {number} failed: {e}")
                broadcast.total_failed += len(chunk)
                self.db.commit()
                continue

            broadcast.total_sent += outcome.success_count
            broadcast.total_failed += outcome.failure_count
            self.db.commit()

            if record_recipients:
                self._record_recipients(title, body, data, chunk, outcome)
            self.registry.touch(outcome.delivered_tokens)
            self.registry.prune_invalid(outcome.invalid_tokens)

        broadcast.status = BroadcastStatus.COMPLETED
        broadcast.completed_at = self.clock()
        self.db.commit()
        self.db.refresh(broadcast)

        logger.info(
            f"Broadcast {broadcast_id} completed: {broadcast.total_targeted} targeted, "
            f"{broadcast.total_sent} sent, {broadcast.total_failed} failed"
        )
        return broadcast

    def _record_recipients(
        self,
        title: str,
        body: str,
        data: dict[str, Any],
        chunk: Sequence[EndpointRef],
        outcome: DispatchOutcome,
    ) -> None:
        tokens_by_user: dict[str, list[str]] = defaultdict(list)
        for endpoint in chunk:
            tokens_by_user[endpoint.user_id].append(endpoint.token)

        for user_id, tokens in tokens_by_user.items():
            handle = self.recorder.open(
                user_id, title, body, data, NotificationKind.BROADCAST, len(tokens)
            )
            self.recorder.close(handle, outcome.for_tokens(tokens))

    def _mark_failed(self, broadcast_id: int, error: Exception) -> None:
        """Best-effort transition to failed. Never raises."""
        try:
            self.db.rollback()
            self.db.query(Broadcast).filter(
                Broadcast.id == broadcast_id,
                Broadcast.status == BroadcastStatus.PROCESSING,
            ).update(
                {
                    Broadcast.status: BroadcastStatus.FAILED,
                    Broadcast.completed_at: self.clock(),
                    Broadcast.error: str(error)[:1000],
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Could not mark broadcast {broadcast_id} as failed", exc_info=True)
