"""Delivery history: one record per recipient per notification."""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Float, case, cast, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pushengine.database import store_errors
from pushengine.exceptions import NotFoundError, ValidationError
from pushengine.models.enums import DeliveryStatus, NotificationKind
from pushengine.models.mixins import utcnow
from pushengine.models.notification_record import NotificationRecord
from pushengine.services.dispatcher import DispatchOutcome, coerce_data

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def derive_status(total: int, success_count: int, failure_count: int) -> DeliveryStatus:
    """Final status of a record from its delivery counts."""
    if failure_count == total:
        return DeliveryStatus.FAILED
    if success_count == total:
        return DeliveryStatus.SENT
    return DeliveryStatus.PARTIAL


@dataclass
class RecordHandle:
    """An open (pending) delivery record. Close it exactly once."""

    record_id: int | None
    recipient_user_id: str
    kind: NotificationKind
    total_endpoints: int
    closed: bool = False
    status: DeliveryStatus = DeliveryStatus.PENDING


@dataclass
class HistoryPage:
    items: list[NotificationRecord]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class NotificationStats:
    total_notifications: int = 0
    total_sent: int = 0
    total_failed: int = 0
    avg_success_rate: float = 0.0  # percentage
    status_counts: dict[str, int] = field(default_factory=dict)
    kind_counts: dict[str, int] = field(default_factory=dict)


class DeliveryRecorder:
    """Persists the outcome of every delivery attempt.

    Write failures here never fail the send: the push already went out, so
    a lost history row is logged and otherwise ignored.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] | None = None):
        self.db = db
        self.clock = clock or utcnow

    def open(
        self,
        recipient_user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None,
        kind: NotificationKind,
        total_targets: int,
    ) -> RecordHandle:
        """Create a pending record for a send that is about to happen."""
        handle = RecordHandle(
            record_id=None,
            recipient_user_id=recipient_user_id,
            kind=kind,
            total_endpoints=total_targets,
        )
        record = NotificationRecord(
            recipient_user_id=recipient_user_id,
            title=title,
            body=body,
            data=coerce_data(data),
            kind=kind,
            status=DeliveryStatus.PENDING,
            total_endpoints=total_targets,
            invalid_tokens=[],
            created_at=self.clock(),
        )
        try:
            self.db.add(record)
            self.db.commit()
            handle.record_id = record.id
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                f"Could not create notification record for user {recipient_user_id}",
                exc_info=True,
            )
        return handle

    def close(self, handle: RecordHandle, result: DispatchOutcome | BaseException) -> DeliveryStatus:
        """Stamp the final status, counts and provider response on a record."""
        if handle.closed:
            raise RuntimeError(f"Notification record {handle.record_id} is already closed")
        handle.closed = True

        if isinstance(result, DispatchOutcome):
            success_count = result.success_count
            failure_count = result.failure_count
            status = derive_status(handle.total_endpoints, success_count, failure_count)
            invalid_tokens = list(result.invalid_tokens)
            provider_response = result.provider_response()
            error = "; ".join(result.per_batch_errors) or None
        else:
            success_count = 0
            failure_count = handle.total_endpoints
            status = DeliveryStatus.FAILED
            invalid_tokens = []
            provider_response = None
            error = str(result) or type(result).__name__
        handle.status = status

        if handle.record_id is None:
            logger.warning(
                f"Delivery to user {handle.recipient_user_id} finished as {status.value} "
                "but has no history record"
            )
            return status

        try:
            self.db.query(NotificationRecord).filter(
                NotificationRecord.id == handle.record_id
            ).update(
                {
                    NotificationRecord.status: status,
                    NotificationRecord.sent_at: self.clock(),
                    NotificationRecord.success_count: success_count,
                    NotificationRecord.failure_count: failure_count,
                    NotificationRecord.invalid_tokens: invalid_tokens,
                    NotificationRecord.provider_response: provider_response,
                    NotificationRecord.error: error,
                },
                synchronize_session="fetch",
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Could not close notification record {handle.record_id}", exc_info=True)

        return status

    def get(self, record_id: int) -> NotificationRecord:
        with store_errors(self.db, "load notification record"):
            record = (
                self.db.query(NotificationRecord).filter(NotificationRecord.id == record_id).first()
            )
        if not record:
            raise NotFoundError("Notification record not found")
        return record

    def history(
        self,
        user_id: str | None = None,
        status: str | DeliveryStatus | None = None,
        kind: str | NotificationKind | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> HistoryPage:
        """Get delivery history, newest first."""
        if page < 1:
            raise ValidationError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        with store_errors(self.db, "load notification history"):
            query = self._filtered(user_id=user_id, status=status, kind=kind)
            total = query.count()
            items = (
                query.order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        return HistoryPage(items=items, page=page, limit=limit, total=total)

    def stats(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        user_id: str | None = None,
        kind: str | NotificationKind | None = None,
    ) -> NotificationStats:
        """Aggregate delivery statistics over a time range."""
        success_rate = case(
            (
                NotificationRecord.total_endpoints > 0,
                cast(NotificationRecord.success_count, Float)
                / NotificationRecord.total_endpoints,
            ),
            else_=None,
        )

        with store_errors(self.db, "compute notification stats"):
            base = self._filtered(user_id=user_id, kind=kind, start=start, end=end)
            totals = base.with_entities(
                func.count(NotificationRecord.id),
                func.coalesce(func.sum(NotificationRecord.success_count), 0),
                func.coalesce(func.sum(NotificationRecord.failure_count), 0),
                func.avg(success_rate),
            ).one()
            by_status = (
                base.with_entities(NotificationRecord.status, func.count(NotificationRecord.id))
                .group_by(NotificationRecord.status)
                .all()
            )
            by_kind = (
                base.with_entities(NotificationRecord.kind, func.count(NotificationRecord.id))
                .group_by(NotificationRecord.kind)
                .all()
            )

        count, sent, failed, avg_rate = totals
        return NotificationStats(
            total_notifications=count,
            total_sent=int(sent),
            total_failed=int(failed),
            avg_success_rate=round(float(avg_rate or 0) * 100, 2),
            status_counts={s.value: n for s, n in by_status},
            kind_counts={k.value: n for k, n in by_kind},
        )

    def _filtered(
        self,
        user_id: str | None = None,
        status: str | DeliveryStatus | None = None,
        kind: str | NotificationKind | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ):
        query = self.db.query(NotificationRecord)
        if user_id:
            query = query.filter(NotificationRecord.recipient_user_id == user_id)
        if status:
            try:
                query = query.filter(NotificationRecord.status == DeliveryStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status '{status}'") from None
        if kind:
            try:
                query = query.filter(NotificationRecord.kind == NotificationKind(kind))
            except ValueError:
                raise ValidationError(f"Invalid kind '{kind}'") from None
        if start:
            query = query.filter(NotificationRecord.created_at >= start)
        if end:
            query = query.filter(NotificationRecord.created_at <= end)
        return query
