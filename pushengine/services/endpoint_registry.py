"""Registry of device endpoints and their validity."""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pushengine.database import store_errors
from pushengine.exceptions import NotFoundError, ValidationError
from pushengine.models.endpoint import DeviceEndpoint
from pushengine.models.enums import DeviceType
from pushengine.models.mixins import utcnow

logger = logging.getLogger(__name__)


def parse_device_type(value: str | DeviceType) -> DeviceType:
    """Parse a device type, raising ValidationError for unknown platforms."""
    try:
        return DeviceType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid device_type '{value}'. Allowed values are ios, android, web."
        ) from None


class EndpointRegistry:
    """Owns device endpoint records and answers "who can we reach" queries."""

    def __init__(self, db: Session, clock: Callable[[], datetime] | None = None):
        self.db = db
        self.clock = clock or utcnow

    def register(
        self,
        user_id: str,
        token: str,
        device_id: str,
        device_type: str | DeviceType,
        app_version: str | None = None,
    ) -> DeviceEndpoint:
        """Register a token, or refresh it in place if it is already known.

        A new token for a device that already has an active endpoint
        supersedes the old one; at most one endpoint stays active per
        (user_id, device_id).
        """
        required = {
            "user_id": user_id,
            "token": token,
            "device_id": device_id,
            "device_type": device_type,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        dtype = parse_device_type(device_type)

        with store_errors(self.db, "register endpoint"):
            try:
                endpoint = self._upsert(user_id, token, device_id, dtype, app_version)
                self.db.commit()
            except IntegrityError:
                # Another registration inserted the same token first; update theirs.
                self.db.rollback()
                logger.info(f"Token registration race for user {user_id}, updating in place")
                endpoint = self._upsert(user_id, token, device_id, dtype, app_version)
                self.db.commit()
            self.db.refresh(endpoint)

        return endpoint

    def _upsert(
        self,
        user_id: str,
        token: str,
        device_id: str,
        device_type: DeviceType,
        app_version: str | None,
    ) -> DeviceEndpoint:
        now = self.clock()
        endpoint = self.db.query(DeviceEndpoint).filter(DeviceEndpoint.token == token).first()

        # Supersede any other active endpoint on this device
        self.db.query(DeviceEndpoint).filter(
            DeviceEndpoint.user_id == user_id,
            DeviceEndpoint.device_id == device_id,
            DeviceEndpoint.is_active.is_(True),
            DeviceEndpoint.token != token,
        ).update({DeviceEndpoint.is_active: False}, synchronize_session=False)

        if endpoint:
            endpoint.user_id = user_id
            endpoint.device_id = device_id
            endpoint.device_type = device_type
            endpoint.app_version = app_version
            endpoint.is_active = True
            endpoint.last_used_at = now
            logger.info(f"Updated endpoint {endpoint.id} for user {user_id}")
            return endpoint

        endpoint = DeviceEndpoint(
            user_id=user_id,
            token=token,
            device_id=device_id,
            device_type=device_type,
            app_version=app_version,
            is_active=True,
            last_used_at=now,
            created_at=now,
        )
        self.db.add(endpoint)
        self.db.flush()
        logger.info(f"Registered endpoint {endpoint.id} for user {user_id} ({device_type.value})")
        return endpoint

    def list_for_user(self, user_id: str, active_only: bool = True) -> list[DeviceEndpoint]:
        """Get a user's endpoints, newest first."""
        with store_errors(self.db, "list endpoints"):
            query = self.db.query(DeviceEndpoint).filter(DeviceEndpoint.user_id == user_id)
            if active_only:
                query = query.filter(DeviceEndpoint.is_active.is_(True))
            return query.order_by(
                DeviceEndpoint.created_at.desc(), DeviceEndpoint.id.desc()
            ).all()

    def deactivate(self, endpoint_id: int) -> None:
        """Deactivate a single endpoint by id."""
        with store_errors(self.db, "deactivate endpoint"):
            endpoint = self.db.query(DeviceEndpoint).filter(DeviceEndpoint.id == endpoint_id).first()
            if not endpoint:
                raise NotFoundError("Endpoint not found")
            endpoint.is_active = False
            self.db.commit()
        logger.info(f"Deactivated endpoint {endpoint_id}")

    def resolve_active(
        self,
        user_ids: Iterable[str] | None = None,
        device_types: Iterable[str | DeviceType] | None = None,
    ) -> list[DeviceEndpoint]:
        """Get every active endpoint matching the given users and platforms.

        An empty or missing filter places no restriction on that field, so
        calling with neither returns all active endpoints.
        """
        user_ids = list(user_ids or [])
        types = [parse_device_type(t) for t in device_types or []]

        with store_errors(self.db, "resolve endpoints"):
            query = self.db.query(DeviceEndpoint).filter(DeviceEndpoint.is_active.is_(True))
            if user_ids:
                query = query.filter(DeviceEndpoint.user_id.in_(user_ids))
            if types:
                query = query.filter(DeviceEndpoint.device_type.in_(types))
            return query.order_by(DeviceEndpoint.id).all()

    def prune_invalid(self, tokens: Iterable[str]) -> int:
        """Deactivate endpoints the provider reported as invalid.

        Returns the number of endpoints that were active before the call.
        """
        tokens = list(set(tokens))
        if not tokens:
            return 0

        with store_errors(self.db, "prune invalid endpoints"):
            changed = (
                self.db.query(DeviceEndpoint)
                .filter(DeviceEndpoint.token.in_(tokens), DeviceEndpoint.is_active.is_(True))
                .update({DeviceEndpoint.is_active: False}, synchronize_session="fetch")
            )
            self.db.commit()

        if changed:
            logger.info(f"Deactivated {changed} invalid endpoints")
        return changed

    def touch(self, tokens: Iterable[str]) -> None:
        """Refresh last_used_at for endpoints that were just sent to."""
        tokens = list(tokens)
        if not tokens:
            return

        with store_errors(self.db, "refresh endpoint usage"):
            self.db.query(DeviceEndpoint).filter(DeviceEndpoint.token.in_(tokens)).update(
                {DeviceEndpoint.last_used_at: self.clock()}, synchronize_session="fetch"
            )
            self.db.commit()

    def sweep_stale(self, older_than: timedelta) -> int:
        """Hard-delete inactive endpoints unused for longer than older_than."""
        cutoff = self.clock() - older_than

        with store_errors(self.db, "sweep stale endpoints"):
            deleted = (
                self.db.query(DeviceEndpoint)
                .filter(
                    DeviceEndpoint.is_active.is_(False),
                    DeviceEndpoint.last_used_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()

        logger.info(f"Swept {deleted} stale endpoints unused since {cutoff.isoformat()}")
        return deleted

    def count(self, active_only: bool = False) -> int:
        """Count registered endpoints."""
        with store_errors(self.db, "count endpoints"):
            query = self.db.query(DeviceEndpoint)
            if active_only:
                query = query.filter(DeviceEndpoint.is_active.is_(True))
            return query.count()
