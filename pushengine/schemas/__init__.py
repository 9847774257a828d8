"""Pydantic schemas for API requests and responses."""

from pushengine.schemas.broadcast import BroadcastCreate, BroadcastCreated, BroadcastResponse
from pushengine.schemas.endpoint import EndpointList, EndpointRegister, EndpointResponse
from pushengine.schemas.notification import (
    MultiSendResultResponse,
    NotificationHistoryResponse,
    NotificationSend,
    NotificationSendMultiple,
    NotificationStatsResponse,
    SendResultResponse,
)
from pushengine.schemas.preferences import PreferencesResponse, PreferencesUpdate

__all__ = [
    "EndpointRegister",
    "EndpointResponse",
    "EndpointList",
    "NotificationSend",
    "NotificationSendMultiple",
    "SendResultResponse",
    "MultiSendResultResponse",
    "NotificationHistoryResponse",
    "NotificationStatsResponse",
    "BroadcastCreate",
    "BroadcastCreated",
    "BroadcastResponse",
    "PreferencesUpdate",
    "PreferencesResponse",
]
