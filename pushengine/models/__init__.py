"""SQLAlchemy models."""

from pushengine.models.broadcast import Broadcast
from pushengine.models.endpoint import DeviceEndpoint
from pushengine.models.notification_record import NotificationRecord
from pushengine.models.preferences import NotificationPreferences

__all__ = [
    "Broadcast",
    "DeviceEndpoint",
    "NotificationPreferences",
    "NotificationRecord",
]
