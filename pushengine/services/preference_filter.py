"""Preference-based suppression of notifications."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from pushengine.database import store_errors
from pushengine.exceptions import ValidationError
from pushengine.models.enums import DigestFrequency
from pushengine.models.mixins import utcnow
from pushengine.models.preferences import NotificationPreferences, default_categories

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

UPDATABLE_FIELDS = {
    "global_enabled",
    "categories",
    "quiet_hours_enabled",
    "quiet_hours_start",
    "quiet_hours_end",
    "quiet_hours_timezone",
    "frequency",
}


@dataclass(frozen=True)
class DeliveryDecision:
    """Whether a notification may be delivered right now, and why."""

    allowed: bool
    reason: str


def in_quiet_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """Check an hour of day against a quiet window that may wrap midnight."""
    if start_hour > end_hour:
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


class PreferenceFilter:
    """Decides per user and category whether delivery is currently permitted."""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] | None = None,
        use_timezone: bool = False,
    ):
        self.db = db
        self.clock = clock or utcnow
        self.use_timezone = use_timezone

    def can_deliver(
        self, user_id: str, category: str = "general", urgent: bool = False
    ) -> DeliveryDecision:
        """Check the user's preferences.

        Never raises: a failed lookup allows delivery so a preference fault
        cannot starve a user of notifications.
        """
        try:
            preferences = (
                self.db.query(NotificationPreferences)
                .filter(NotificationPreferences.user_id == user_id)
                .first()
            )

            if not preferences:
                return DeliveryDecision(True, "default_preferences")

            if not preferences.global_enabled:
                return DeliveryDecision(False, "globally_disabled")

            categories = preferences.categories or {}
            if category and categories.get(category) is False:
                return DeliveryDecision(False, f"category_disabled:{category}")

            if preferences.quiet_hours_enabled and not urgent:
                if self._is_quiet_now(preferences):
                    return DeliveryDecision(False, "quiet_hours")

            return DeliveryDecision(True, "allowed")

        except Exception as e:
            logger.warning(f"Preference lookup failed for user {user_id}, allowing: {e}")
            self.db.rollback()
            return DeliveryDecision(True, "error_default_allow")

    def _is_quiet_now(self, preferences: NotificationPreferences) -> bool:
        start_hour = int(preferences.quiet_hours_start.split(":")[0])
        end_hour = int(preferences.quiet_hours_end.split(":")[0])
        return in_quiet_window(self._current_hour(preferences), start_hour, end_hour)

    def _current_hour(self, preferences: NotificationPreferences) -> int:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)

        if not self.use_timezone:
            # Hour of day in UTC regardless of the stored timezone
            return now.astimezone(UTC).hour

        try:
            user_tz = ZoneInfo(preferences.quiet_hours_timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            user_tz = ZoneInfo("UTC")
        return now.astimezone(user_tz).hour

    def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Get a user's preferences, creating the defaults on first read."""
        with store_errors(self.db, "load preferences"):
            preferences = (
                self.db.query(NotificationPreferences)
                .filter(NotificationPreferences.user_id == user_id)
                .first()
            )
            if not preferences:
                preferences = NotificationPreferences(
                    user_id=user_id, categories=default_categories()
                )
                self.db.add(preferences)
                self.db.commit()
                self.db.refresh(preferences)
            return preferences

    def update_preferences(self, user_id: str, changes: dict[str, Any]) -> NotificationPreferences:
        """Apply a partial update, creating the record if needed."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

        for field in ("quiet_hours_start", "quiet_hours_end"):
            value = changes.get(field)
            if value is not None and not TIME_PATTERN.match(value):
                raise ValidationError(f"{field} must be a 24-hour HH:MM time")

        if changes.get("frequency") is not None:
            try:
                changes["frequency"] = DigestFrequency(changes["frequency"])
            except ValueError:
                raise ValidationError(
                    "Invalid frequency. Allowed values are immediate, batched, daily_digest."
                ) from None

        with store_errors(self.db, "update preferences"):
            preferences = (
                self.db.query(NotificationPreferences)
                .filter(NotificationPreferences.user_id == user_id)
                .first()
            )
            if not preferences:
                preferences = NotificationPreferences(
                    user_id=user_id, categories=default_categories()
                )
                self.db.add(preferences)

            for field, value in changes.items():
                if value is None:
                    continue
                if field == "categories":
                    # Merge so a partial category map keeps the others
                    value = {**(preferences.categories or default_categories()), **value}
                setattr(preferences, field, value)

            self.db.commit()
            self.db.refresh(preferences)

        logger.info(f"Updated notification preferences for user {user_id}")
        return preferences
