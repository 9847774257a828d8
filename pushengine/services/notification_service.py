"""Notification service for direct sends to one or many users."""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from pushengine.config import Settings, get_settings
from pushengine.exceptions import NotFoundError, PersistenceFault, ProviderError, ValidationError
from pushengine.models.enums import DeliveryStatus, NotificationKind
from pushengine.models.mixins import utcnow
from pushengine.services.delivery_recorder import DeliveryRecorder
from pushengine.services.dispatcher import BatchDispatcher, DispatchOutcome, chunked, snapshot
from pushengine.services.endpoint_registry import EndpointRegistry
from pushengine.services.preference_filter import PreferenceFilter
from pushengine.services.push_provider import PushProvider

logger = logging.getLogger(__name__)

HEALTH_CHECK_TOKEN = "health-check-token"  # noqa: S105


@dataclass
class SendResult:
    """Outcome of a send to a single user."""

    success_count: int = 0
    failure_count: int = 0
    total_endpoints: int = 0
    invalid_tokens: list[str] = field(default_factory=list)
    record_id: int | None = None
    status: DeliveryStatus | None = None
    suppressed: bool = False
    reason: str | None = None


@dataclass
class MultiSendResult:
    """Outcome of a send to many users."""

    total_users: int = 0
    total_success: int = 0
    total_failure: int = 0
    record_ids: dict[str, int] = field(default_factory=dict)
    suppressed: dict[str, str] = field(default_factory=dict)
    batch_results: list[dict[str, Any]] = field(default_factory=list)


def build_dispatcher(provider: PushProvider, settings: Settings) -> BatchDispatcher:
    """Create a dispatcher sized from settings."""
    return BatchDispatcher(
        provider,
        batch_size=settings.multicast_batch_size,
        timeout=settings.provider_timeout_seconds,
        concurrency=settings.dispatch_concurrency,
    )


class NotificationService:
    """Runs the delivery pipeline for direct sends.

    preferences -> resolve endpoints -> dispatch -> record + prune invalid
    """

    def __init__(
        self,
        db: Session,
        provider: PushProvider,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db = db
        self.provider = provider
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.registry = EndpointRegistry(db, clock=self.clock)
        self.preferences = PreferenceFilter(
            db, clock=self.clock, use_timezone=self.settings.quiet_hours_use_timezone
        )
        self.recorder = DeliveryRecorder(db, clock=self.clock)
        self.dispatcher = build_dispatcher(provider, self.settings)

    def send_to_user(
        self,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        category: str = "general",
        urgent: bool = False,
    ) -> SendResult:
        """Send a notification to every active endpoint of one user."""
        if not user_id or not title or not body:
            raise ValidationError("Missing required fields: user_id, title, body")

        decision = self.preferences.can_deliver(user_id, category, urgent=urgent)
        if not decision.allowed:
            logger.info(f"Notification to user {user_id} suppressed: {decision.reason}")
            return SendResult(suppressed=True, reason=decision.reason)

        endpoints = snapshot(self.registry.resolve_active(user_ids=[user_id]))
        if not endpoints:
            raise NotFoundError("No active endpoints found for user")

        handle = self.recorder.open(
            user_id, title, body, data, NotificationKind.SINGLE, len(endpoints)
        )
        try:
            outcome = self.dispatcher.send(endpoints, title, body, data)
        except Exception as e:
            self.recorder.close(handle, e)
            raise
        status = self.recorder.close(handle, outcome)
        self._reconcile(outcome)

        if outcome.all_batches_failed:
            raise ProviderError(
                f"Failed to send notification: {'; '.join(outcome.per_batch_errors)}",
                record_id=handle.record_id,
            )

        return SendResult(
            success_count=outcome.success_count,
            failure_count=outcome.failure_count,
            total_endpoints=len(endpoints),
            invalid_tokens=outcome.invalid_tokens,
            record_id=handle.record_id,
            status=status,
        )

    def send_to_users(
        self,
        user_ids: Iterable[str],
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        category: str = "general",
        urgent: bool = False,
    ) -> MultiSendResult:
        """Send a notification to many users, one history record per reached user.

        Users are processed in groups so neither the endpoint query nor the
        provider batches grow with the request size.
        """
        user_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not user_ids or not title or not body:
            raise ValidationError("Missing required fields: user_ids (non-empty), title, body")
        if len(user_ids) > self.settings.max_users_per_request:
            raise ValidationError(
                f"Maximum {self.settings.max_users_per_request} users allowed per request"
            )

        result = MultiSendResult(total_users=len(user_ids))

        for number, group in enumerate(chunked(user_ids, self.settings.user_batch_size), start=1):
            allowed = []
            for user_id in group:
                decision = self.preferences.can_deliver(user_id, category, urgent=urgent)
                if decision.allowed:
                    allowed.append(user_id)
                else:
                    result.suppressed[user_id] = decision.reason
            if not allowed:
                continue

            endpoints = snapshot(self.registry.resolve_active(user_ids=allowed))
            if not endpoints:
                continue

            tokens_by_user: dict[str, list[str]] = defaultdict(list)
            for endpoint in endpoints:
                tokens_by_user[endpoint.user_id].append(endpoint.token)

            handles = {
                user_id: self.recorder.open(
                    user_id, title, body, data, NotificationKind.MULTIPLE, len(tokens)
                )
                for user_id, tokens in tokens_by_user.items()
            }

            try:
                outcome = self.dispatcher.send(endpoints, title, body, data)
            except Exception as e:
                for handle in handles.values():
                    self.recorder.close(handle, e)
                raise

            for user_id, tokens in tokens_by_user.items():
                handle = handles[user_id]
                self.recorder.close(handle, outcome.for_tokens(tokens))
                if handle.record_id is not None:
                    result.record_ids[user_id] = handle.record_id
            self._reconcile(outcome)

            result.total_success += outcome.success_count
            result.total_failure += outcome.failure_count
            summary: dict[str, Any] = {
                "batch": number,
                "totalTokens": len(endpoints),
                "successCount": outcome.success_count,
                "failureCount": outcome.failure_count,
            }
            if outcome.per_batch_errors:
                summary["errors"] = outcome.per_batch_errors
            result.batch_results.append(summary)

        logger.info(
            f"Sent to {len(user_ids)} users: {result.total_success} delivered, "
            f"{result.total_failure} failed, {len(result.suppressed)} suppressed"
        )
        return result

    def retry(self, record_id: int) -> SendResult:
        """Re-send a failed single-user notification."""
        record = self.recorder.get(record_id)
        if record.status != DeliveryStatus.FAILED:
            raise ValidationError("Only failed notifications can be retried")
        if record.kind != NotificationKind.SINGLE:
            raise ValidationError("Only single-user notifications can be retried")

        logger.info(f"Retrying notification {record_id} for user {record.recipient_user_id}")
        return self.send_to_user(
            record.recipient_user_id, record.title, record.body, dict(record.data or {})
        )

    def health_check(self) -> dict[str, Any]:
        """Check provider reachability and store connectivity."""
        health: dict[str, Any] = {"timestamp": self.clock().isoformat()}

        try:
            # Any per-token answer, even a rejection, proves the provider is reachable
            self.provider.send_multicast("Health check", "ok", {}, [HEALTH_CHECK_TOKEN], dry_run=True)
            health["provider"] = "healthy"
        except Exception as e:
            logger.warning(f"Push provider health check failed: {e}")
            health["provider"] = "unhealthy"
            health["provider_error"] = str(e)

        try:
            health["stats"] = {
                "total_endpoints": self.registry.count(),
                "active_endpoints": self.registry.count(active_only=True),
                "total_notifications": self.recorder.stats().total_notifications,
            }
            health["database"] = "healthy"
        except PersistenceFault as e:
            health["database"] = "unhealthy"
            health["database_error"] = str(e)

        return health

    def _reconcile(self, outcome: DispatchOutcome) -> None:
        """Feed provider results back into the registry.

        The send has already happened, so a store fault here is logged
        rather than reported as a failed send.
        """
        try:
            self.registry.touch(outcome.delivered_tokens)
            self.registry.prune_invalid(outcome.invalid_tokens)
        except PersistenceFault:
            logger.error("Could not reconcile endpoints after send", exc_info=True)
