"""Notification history model."""

from sqlalchemy import JSON, Column, DateTime, Enum, Index, Integer, String, Text

from pushengine.database import Base
from pushengine.models.enums import DeliveryStatus, NotificationKind
from pushengine.models.mixins import TimestampMixin


class NotificationRecord(Base, TimestampMixin):
    """One delivery attempt to one recipient."""

    __tablename__ = "notification_records"
    __table_args__ = (
        Index("ix_notification_records_user_created", "recipient_user_id", "created_at"),
        Index("ix_notification_records_status_created", "status", "created_at"),
        Index("ix_notification_records_kind_created", "kind", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    recipient_user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, default=dict, nullable=False)  # string-valued after coercion
    kind = Column(
        Enum(
            NotificationKind,
            name="notificationkind",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    status = Column(
        Enum(
            DeliveryStatus,
            name="deliverystatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DeliveryStatus.PENDING,
        nullable=False,
    )
    sent_at = Column(DateTime(timezone=True), nullable=True)

    # Delivery details
    total_endpoints = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    failure_count = Column(Integer, default=0, nullable=False)
    invalid_tokens = Column(JSON, default=list, nullable=False)

    provider_response = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
