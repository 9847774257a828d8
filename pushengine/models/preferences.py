"""User notification preferences model."""

from sqlalchemy import JSON, Boolean, Column, Enum, Integer, String

from pushengine.database import Base
from pushengine.models.enums import DigestFrequency
from pushengine.models.mixins import TimestampMixin

DEFAULT_CATEGORIES = ("marketing", "transactional", "alerts", "social", "news")


def default_categories() -> dict[str, bool]:
    """Every known category enabled."""
    return {name: True for name in DEFAULT_CATEGORIES}


class NotificationPreferences(Base, TimestampMixin):
    """Per-user opt-in configuration. A missing row means everything is allowed."""

    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    global_enabled = Column(Boolean, default=True, nullable=False)
    categories = Column(JSON, default=default_categories, nullable=False)

    quiet_hours_enabled = Column(Boolean, default=False, nullable=False)
    quiet_hours_start = Column(String(5), default="22:00", nullable=False)  # 24h "HH:MM"
    quiet_hours_end = Column(String(5), default="08:00", nullable=False)
    quiet_hours_timezone = Column(String(50), default="UTC", nullable=False)

    frequency = Column(
        Enum(
            DigestFrequency,
            name="digestfrequency",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=DigestFrequency.IMMEDIATE,
        nullable=False,
    )
