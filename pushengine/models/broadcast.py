"""Broadcast model for criteria-targeted notifications."""

from sqlalchemy import JSON, Column, DateTime, Enum, Integer, String, Text

from pushengine.database import Base
from pushengine.models.enums import BroadcastStatus
from pushengine.models.mixins import TimestampMixin, utcnow


class Broadcast(Base, TimestampMixin):
    """A deferred or immediate send to every endpoint matching some criteria."""

    __tablename__ = "broadcasts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, default=dict, nullable=False)

    # Target criteria; NULL means "no restriction on this field"
    target_user_ids = Column(JSON, nullable=True)
    target_device_types = Column(JSON, nullable=True)

    scheduled_for = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    status = Column(
        Enum(
            BroadcastStatus,
            name="broadcaststatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=BroadcastStatus.SCHEDULED,
        nullable=False,
        index=True,
    )

    # Stats
    total_targeted = Column(Integer, default=0, nullable=False)
    total_sent = Column(Integer, default=0, nullable=False)
    total_failed = Column(Integer, default=0, nullable=False)

    created_by = Column(String(64), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)
