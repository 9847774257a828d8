"""Notification send and history Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pushengine.models.enums import DeliveryStatus, NotificationKind


class NotificationSend(BaseModel):
    """Schema for sending to a single user."""

    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    category: str = "general"
    urgent: bool = False


class NotificationSendMultiple(BaseModel):
    """Schema for sending to many users."""

    user_ids: list[str] = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    category: str = "general"
    urgent: bool = False


class TemplateSend(BaseModel):
    """Schema for sending a named template to a single user."""

    user_id: str = Field(min_length=1)
    template: str = Field(min_length=1)
    values: dict[str, Any] = Field(default_factory=dict)
    category: str | None = None
    urgent: bool = False


class SendResultResponse(BaseModel):
    """Schema for single-user send result."""

    success_count: int
    failure_count: int
    total_endpoints: int
    invalid_tokens: list[str]
    record_id: int | None
    status: DeliveryStatus | None
    suppressed: bool
    reason: str | None

    model_config = {"from_attributes": True}


class MultiSendResultResponse(BaseModel):
    """Schema for multi-user send result."""

    total_users: int
    total_success: int
    total_failure: int
    record_ids: dict[str, int]
    suppressed: dict[str, str]
    batch_results: list[dict[str, Any]]

    model_config = {"from_attributes": True}


class NotificationRecordResponse(BaseModel):
    """Schema for a delivery history record."""

    id: int
    recipient_user_id: str
    title: str
    body: str
    data: dict[str, Any]
    kind: NotificationKind
    status: DeliveryStatus
    sent_at: datetime | None
    total_endpoints: int
    success_count: int
    failure_count: int
    invalid_tokens: list[str]
    error: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationHistoryResponse(BaseModel):
    """Schema for paginated delivery history."""

    notifications: list[NotificationRecordResponse]
    pagination: Pagination


class NotificationStatsResponse(BaseModel):
    """Schema for aggregate delivery statistics."""

    total_notifications: int
    total_sent: int
    total_failed: int
    avg_success_rate: float
    status_counts: dict[str, int]
    kind_counts: dict[str, int]

    model_config = {"from_attributes": True}
