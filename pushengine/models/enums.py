"""Enums for model fields."""

from enum import Enum


class DeviceType(str, Enum):
    """Platforms a device endpoint can be registered for."""

    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class NotificationKind(str, Enum):
    """How a notification record was addressed."""

    SINGLE = "single"
    MULTIPLE = "multiple"
    BROADCAST = "broadcast"


class DeliveryStatus(str, Enum):
    """Delivery status of a notification record."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    PARTIAL = "partial"


class BroadcastStatus(str, Enum):
    """Lifecycle of a broadcast."""

    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DigestFrequency(str, Enum):
    """How often a user wants to receive notifications."""

    IMMEDIATE = "immediate"
    BATCHED = "batched"
    DAILY_DIGEST = "daily_digest"
