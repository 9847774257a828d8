"""Notification API: direct sends, retries, history and statistics."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from pushengine.api.dependencies import get_delivery_recorder, get_notification_service
from pushengine.models.enums import DeliveryStatus, NotificationKind
from pushengine.schemas.notification import (
    MultiSendResultResponse,
    NotificationHistoryResponse,
    NotificationRecordResponse,
    NotificationSend,
    NotificationSendMultiple,
    NotificationStatsResponse,
    Pagination,
    SendResultResponse,
    TemplateSend,
)
from pushengine.services.delivery_recorder import DeliveryRecorder, NotificationStats
from pushengine.services.notification_service import (
    MultiSendResult,
    NotificationService,
    SendResult,
)
from pushengine.services.templates import render_template

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.post("/send", response_model=SendResultResponse)
def send_notification(
    notification: NotificationSend,
    service: Annotated[NotificationService, Depends(get_notification_service)],
) -> SendResult:
    """Send a notification to every active device of one user."""
    return service.send_to_user(
        notification.user_id,
        notification.title,
        notification.body,
        notification.data,
        category=notification.category,
        urgent=notification.urgent,
    )


@router.post("/send-multiple", response_model=MultiSendResultResponse)
def send_multiple(
    notification: NotificationSendMultiple,
    service: Annotated[NotificationService, Depends(get_notification_service)],
) -> MultiSendResult:
    """Send a notification to up to 500 users."""
    return service.send_to_users(
        notification.user_ids,
        notification.title,
        notification.body,
        notification.data,
        category=notification.category,
        urgent=notification.urgent,
    )


@router.post("/send-template", response_model=SendResultResponse)
def send_template(
    request: TemplateSend,
    service: Annotated[NotificationService, Depends(get_notification_service)],
) -> SendResult:
    """Render a named template and send it to one user."""
    template = render_template(request.template, request.values)
    return service.send_to_user(
        request.user_id,
        template.title,
        template.body,
        template.data,
        category=request.category or template.category,
        urgent=request.urgent or template.data.get("urgent") is True,
    )


@router.post("/{record_id}/retry", response_model=SendResultResponse)
def retry_notification(
    record_id: int,
    service: Annotated[NotificationService, Depends(get_notification_service)],
) -> SendResult:
    """Re-send a failed notification."""
    return service.retry(record_id)


@router.get("/history", response_model=NotificationHistoryResponse)
def notification_history(
    recorder: Annotated[DeliveryRecorder, Depends(get_delivery_recorder)],
    user_id: str | None = None,
    status: DeliveryStatus | None = None,
    kind: NotificationKind | None = None,
    page: int = 1,
    limit: int = 20,
) -> NotificationHistoryResponse:
    """Get delivery history, newest first."""
    history = recorder.history(user_id=user_id, status=status, kind=kind, page=page, limit=limit)
    return NotificationHistoryResponse(
        notifications=[NotificationRecordResponse.model_validate(r) for r in history.items],
        pagination=Pagination(
            page=history.page, limit=history.limit, total=history.total, pages=history.pages
        ),
    )


@router.get("/stats", response_model=NotificationStatsResponse)
def notification_stats(
    recorder: Annotated[DeliveryRecorder, Depends(get_delivery_recorder)],
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    user_id: str | None = None,
    kind: NotificationKind | None = None,
) -> NotificationStats:
    """Get aggregate delivery statistics."""
    return recorder.stats(start=start_date, end=end_date, user_id=user_id, kind=kind)
