"""Tests for preference-based suppression."""

from datetime import UTC, datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from pushengine.exceptions import ValidationError
from pushengine.models.enums import DigestFrequency
from pushengine.models.preferences import DEFAULT_CATEGORIES, NotificationPreferences
from pushengine.services.preference_filter import PreferenceFilter, in_quiet_window


def make_preferences(db, user_id="u1", **overrides):
    preferences = NotificationPreferences(user_id=user_id, **overrides)
    db.add(preferences)
    db.commit()
    return preferences


class TestQuietWindow:
    @pytest.mark.parametrize(
        "hour,expected",
        [(21, False), (22, True), (23, True), (0, True), (7, True), (8, False), (12, False)],
    )
    def test_window_wrapping_midnight(self, hour, expected):
        """A 22-08 window covers the late evening and early morning."""
        assert in_quiet_window(hour, 22, 8) is expected

    @pytest.mark.parametrize("hour,expected", [(12, False), (13, True), (14, True), (15, False)])
    def test_window_within_day(self, hour, expected):
        assert in_quiet_window(hour, 13, 15) is expected


class TestCanDeliver:
    def test_no_preferences_allows(self, db, clock):
        """Users without a preference record get everything."""
        decision = PreferenceFilter(db, clock=clock).can_deliver("nobody", "marketing")

        assert decision.allowed is True
        assert decision.reason == "default_preferences"

    def test_globally_disabled(self, db, clock):
        make_preferences(db, global_enabled=False)

        decision = PreferenceFilter(db, clock=clock).can_deliver("u1", "alerts", urgent=True)

        assert decision.allowed is False
        assert decision.reason == "globally_disabled"

    def test_category_disabled(self, db, clock):
        """A category explicitly switched off is suppressed."""
        make_preferences(db, categories={"marketing": False, "alerts": True})
        prefs = PreferenceFilter(db, clock=clock)

        assert prefs.can_deliver("u1", "marketing").reason == "category_disabled:marketing"
        assert prefs.can_deliver("u1", "alerts").allowed is True

    def test_unknown_category_allowed(self, db, clock):
        """Categories missing from the map are allowed."""
        make_preferences(db, categories={"marketing": False})

        assert PreferenceFilter(db, clock=clock).can_deliver("u1", "general").allowed is True

    def test_quiet_hours_suppress(self, db, clock):
        """Non-urgent notifications are held back during quiet hours."""
        make_preferences(
            db, quiet_hours_enabled=True, quiet_hours_start="22:00", quiet_hours_end="08:00"
        )
        clock.now = datetime(2026, 3, 10, 23, 30, tzinfo=UTC)

        decision = PreferenceFilter(db, clock=clock).can_deliver("u1")

        assert decision.allowed is False
        assert decision.reason == "quiet_hours"

    @pytest.mark.parametrize("hour,allowed", [(23, False), (2, False), (12, True)])
    def test_quiet_hours_by_hour(self, db, clock, hour, allowed):
        make_preferences(
            db, quiet_hours_enabled=True, quiet_hours_start="22:00", quiet_hours_end="08:00"
        )
        clock.now = datetime(2026, 3, 10, hour, 0, tzinfo=UTC)

        assert PreferenceFilter(db, clock=clock).can_deliver("u1").allowed is allowed

    def test_urgent_bypasses_quiet_hours(self, db, clock):
        make_preferences(db, quiet_hours_enabled=True)
        clock.now = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)

        decision = PreferenceFilter(db, clock=clock).can_deliver("u1", urgent=True)

        assert decision.allowed is True
        assert decision.reason == "allowed"

    def test_outside_quiet_hours(self, db, clock):
        """Noon is outside a 22-08 window."""
        make_preferences(db, quiet_hours_enabled=True)

        assert PreferenceFilter(db, clock=clock).can_deliver("u1").allowed is True

    def test_quiet_hours_use_utc_hour_by_default(self, db, clock):
        """The stored timezone is ignored unless timezone handling is on."""
        make_preferences(
            db,
            quiet_hours_enabled=True,
            quiet_hours_start="22:00",
            quiet_hours_end="08:00",
            quiet_hours_timezone="America/New_York",
        )
        # 01:00 UTC is 20:00 or 21:00 in New York
        clock.now = datetime(2026, 1, 15, 1, 0, tzinfo=UTC)

        assert PreferenceFilter(db, clock=clock).can_deliver("u1").allowed is False
        assert (
            PreferenceFilter(db, clock=clock, use_timezone=True).can_deliver("u1").allowed
            is True
        )

    def test_lookup_failure_allows(self, db, clock):
        """A failing preference lookup fails open."""
        with patch.object(db, "query", side_effect=OperationalError("select", {}, Exception())):
            decision = PreferenceFilter(db, clock=clock).can_deliver("u1", "marketing")

        assert decision.allowed is True
        assert decision.reason == "error_default_allow"


class TestManagePreferences:
    def test_get_creates_defaults(self, db, clock):
        """Reading preferences for a new user stores the defaults."""
        preferences = PreferenceFilter(db, clock=clock).get_preferences("u1")

        assert preferences.global_enabled is True
        assert set(preferences.categories) == set(DEFAULT_CATEGORIES)
        assert preferences.quiet_hours_enabled is False
        assert preferences.frequency == DigestFrequency.IMMEDIATE
        assert db.query(NotificationPreferences).count() == 1

    def test_update_merges_categories(self, db, clock):
        """A partial category map keeps the other categories."""
        prefs = PreferenceFilter(db, clock=clock)

        updated = prefs.update_preferences(
            "u1",
            {
                "categories": {"marketing": False},
                "quiet_hours_enabled": True,
                "quiet_hours_start": "23:00",
                "frequency": "daily_digest",
            },
        )

        assert updated.categories["marketing"] is False
        assert updated.categories["alerts"] is True
        assert updated.quiet_hours_enabled is True
        assert updated.quiet_hours_start == "23:00"
        assert updated.quiet_hours_end == "08:00"
        assert updated.frequency == DigestFrequency.DAILY_DIGEST

    def test_update_rejects_bad_time(self, db, clock):
        with pytest.raises(ValidationError):
            PreferenceFilter(db, clock=clock).update_preferences(
                "u1", {"quiet_hours_start": "25:00"}
            )

    def test_update_rejects_unknown_field(self, db, clock):
        with pytest.raises(ValidationError):
            PreferenceFilter(db, clock=clock).update_preferences("u1", {"user_id": "u2"})

    def test_update_rejects_bad_frequency(self, db, clock):
        with pytest.raises(ValidationError):
            PreferenceFilter(db, clock=clock).update_preferences("u1", {"frequency": "hourly"})
