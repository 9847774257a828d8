"""Device endpoint model for push delivery."""

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, Integer, String

from pushengine.database import Base
from pushengine.models.enums import DeviceType
from pushengine.models.mixins import TimestampMixin, utcnow


class DeviceEndpoint(Base, TimestampMixin):
    """One registered device channel (provider token) for a user."""

    __tablename__ = "device_endpoints"
    __table_args__ = (
        Index("ix_device_endpoints_user_device", "user_id", "device_id"),
        Index("ix_device_endpoints_user_active", "user_id", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    token = Column(String(512), unique=True, nullable=False, index=True)
    device_id = Column(String(255), nullable=False)
    device_type = Column(
        Enum(
            DeviceType,
            name="devicetype",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    app_version = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_used_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<DeviceEndpoint {self.id} user={self.user_id} active={self.is_active}>"
