"""Tests for the endpoint registry."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from pushengine.exceptions import NotFoundError, PersistenceFault, ValidationError
from pushengine.models.endpoint import DeviceEndpoint
from pushengine.models.enums import DeviceType
from pushengine.services.endpoint_registry import EndpointRegistry, parse_device_type


@pytest.fixture
def registry(db, clock):
    return EndpointRegistry(db, clock=clock)


class TestRegister:
    def test_register_new_endpoint(self, registry):
        """A new token is stored active with the registration time."""
        endpoint = registry.register("u1", "tok-1", "phone-1", "android", app_version="2.1.0")

        assert endpoint.id is not None
        assert endpoint.user_id == "u1"
        assert endpoint.device_type == DeviceType.ANDROID
        assert endpoint.app_version == "2.1.0"
        assert endpoint.is_active is True

    def test_reregister_same_token_updates_in_place(self, registry, db):
        """Registering a known token refreshes it rather than adding a row."""
        first = registry.register("u1", "tok-1", "phone-1", "android", app_version="1.0")
        registry.deactivate(first.id)

        second = registry.register("u1", "tok-1", "phone-1", "android", app_version="1.1")

        assert second.id == first.id
        assert second.is_active is True
        assert second.app_version == "1.1"
        assert db.query(DeviceEndpoint).count() == 1

    def test_new_token_supersedes_old_on_same_device(self, registry):
        """Only one endpoint stays active per user and device."""
        old = registry.register("u1", "tok-old", "phone-1", "ios")
        new = registry.register("u1", "tok-new", "phone-1", "ios")

        active = registry.list_for_user("u1")
        assert [e.id for e in active] == [new.id]
        assert all(e.id != old.id for e in active)

    def test_other_devices_stay_active(self, registry):
        """A registration only supersedes endpoints on the same device."""
        registry.register("u1", "tok-phone", "phone-1", "ios")
        registry.register("u1", "tok-tablet", "tablet-1", "ios")

        assert len(registry.list_for_user("u1")) == 2

    def test_token_moves_to_new_user(self, registry):
        """A token re-registered by another user belongs to that user."""
        registry.register("u1", "tok-1", "phone-1", "web")
        registry.register("u2", "tok-1", "phone-1", "web")

        assert registry.list_for_user("u1") == []
        assert [e.token for e in registry.list_for_user("u2")] == ["tok-1"]

    def test_missing_fields(self, registry):
        """Missing required fields are rejected by name."""
        with pytest.raises(ValidationError) as exc_info:
            registry.register("u1", "", "phone-1", "ios")

        assert "token" in exc_info.value.message

    def test_invalid_device_type(self, registry):
        """Unknown platforms are rejected."""
        with pytest.raises(ValidationError):
            registry.register("u1", "tok-1", "phone-1", "blackberry")

    def test_store_fault_is_translated(self, registry, db):
        """Driver errors surface as PersistenceFault."""
        with patch.object(db, "commit", side_effect=OperationalError("commit", {}, Exception())):
            with pytest.raises(PersistenceFault):
                registry.register("u1", "tok-1", "phone-1", "ios")


class TestQueries:
    def test_list_for_user_newest_first(self, registry, clock):
        """Endpoints are listed newest first."""
        registry.register("u1", "tok-a", "dev-a", "ios")
        clock.advance(minutes=1)
        registry.register("u1", "tok-b", "dev-b", "android")

        assert [e.token for e in registry.list_for_user("u1")] == ["tok-b", "tok-a"]

    def test_list_for_user_includes_inactive_on_request(self, registry):
        """active_only=False also returns deactivated endpoints."""
        endpoint = registry.register("u1", "tok-a", "dev-a", "ios")
        registry.deactivate(endpoint.id)

        assert registry.list_for_user("u1") == []
        assert len(registry.list_for_user("u1", active_only=False)) == 1

    def test_deactivate_unknown_endpoint(self, registry):
        """Deactivating a missing endpoint raises NotFoundError."""
        with pytest.raises(NotFoundError):
            registry.deactivate(9999)

    def test_resolve_active_filters(self, registry):
        """Empty filters place no restriction; given filters intersect."""
        registry.register("u1", "tok-1", "d1", "ios")
        registry.register("u1", "tok-2", "d2", "android")
        registry.register("u2", "tok-3", "d3", "web")
        inactive = registry.register("u3", "tok-4", "d4", "ios")
        registry.deactivate(inactive.id)

        assert {e.token for e in registry.resolve_active()} == {"tok-1", "tok-2", "tok-3"}
        assert {e.token for e in registry.resolve_active(user_ids=["u1"])} == {"tok-1", "tok-2"}
        assert {e.token for e in registry.resolve_active(device_types=["ios"])} == {"tok-1"}
        assert {
            e.token for e in registry.resolve_active(user_ids=["u1", "u2"], device_types=["web"])
        } == {"tok-3"}

    def test_parse_device_type(self):
        """Device types parse from their string values."""
        assert parse_device_type("web") == DeviceType.WEB
        with pytest.raises(ValidationError):
            parse_device_type("desktop")


class TestPruneAndSweep:
    def test_prune_invalid_counts_only_active(self, registry):
        """Pruning reports how many endpoints it actually deactivated."""
        registry.register("u1", "tok-1", "d1", "ios")
        registry.register("u1", "tok-2", "d2", "ios")

        assert registry.prune_invalid(["tok-1", "tok-1", "unknown"]) == 1
        assert registry.prune_invalid(["tok-1"]) == 0
        assert [e.token for e in registry.list_for_user("u1")] == ["tok-2"]

    def test_prune_empty_list(self, registry):
        assert registry.prune_invalid([]) == 0

    def test_touch_refreshes_last_used(self, registry, clock):
        """Touching a token moves its last_used_at forward."""
        endpoint = registry.register("u1", "tok-1", "d1", "ios")
        clock.advance(days=3)

        registry.touch(["tok-1"])
        registry.db.refresh(endpoint)

        assert endpoint.last_used_at.replace(tzinfo=None) == clock.now.replace(tzinfo=None)

    def test_sweep_stale_deletes_only_old_inactive(self, registry, clock):
        """Sweeping removes inactive endpoints past the retention period."""
        stale = registry.register("u1", "tok-stale", "d1", "ios")
        registry.register("u1", "tok-active", "d2", "ios")
        recent = registry.register("u2", "tok-recent", "d3", "ios")
        registry.deactivate(stale.id)

        clock.advance(days=31)
        registry.register("u2", "tok-recent", "d3", "ios")
        registry.deactivate(recent.id)

        deleted = registry.sweep_stale(timedelta(days=30))

        assert deleted == 1
        tokens = {e.token for e in registry.db.query(DeviceEndpoint).all()}
        assert tokens == {"tok-active", "tok-recent"}

    def test_count(self, registry):
        """Counts cover all or only active endpoints."""
        registry.register("u1", "tok-1", "d1", "ios")
        endpoint = registry.register("u1", "tok-2", "d2", "ios")
        registry.deactivate(endpoint.id)

        assert registry.count() == 2
        assert registry.count(active_only=True) == 1
