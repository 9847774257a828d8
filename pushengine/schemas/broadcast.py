"""Broadcast-related Pydantic schemas."""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from pushengine.models.enums import BroadcastStatus, DeviceType


class AllEndpoints(BaseModel):
    """Target every active endpoint."""

    kind: Literal["all"] = "all"

    def filters(self) -> tuple[list[str] | None, list[str] | None]:
        return None, None


class ByUserIds(BaseModel):
    """Target the active endpoints of specific users."""

    kind: Literal["user_ids"] = "user_ids"
    user_ids: list[str] = Field(min_length=1)

    def filters(self) -> tuple[list[str] | None, list[str] | None]:
        return list(self.user_ids), None


class ByDeviceTypes(BaseModel):
    """Target every active endpoint on the given platforms."""

    kind: Literal["device_types"] = "device_types"
    device_types: list[DeviceType] = Field(min_length=1)

    def filters(self) -> tuple[list[str] | None, list[str] | None]:
        return None, [t.value for t in self.device_types]


class ByUsersAndDeviceTypes(BaseModel):
    """Target specific users, only on the given platforms."""

    kind: Literal["users_and_device_types"] = "users_and_device_types"
    user_ids: list[str] = Field(min_length=1)
    device_types: list[DeviceType] = Field(min_length=1)

    def filters(self) -> tuple[list[str] | None, list[str] | None]:
        return list(self.user_ids), [t.value for t in self.device_types]


TargetCriteria = Annotated[
    AllEndpoints | ByUserIds | ByDeviceTypes | ByUsersAndDeviceTypes,
    Field(discriminator="kind"),
]


def criteria_from_filters(
    user_ids: list[str] | None, device_types: list[str] | None
) -> AllEndpoints | ByUserIds | ByDeviceTypes | ByUsersAndDeviceTypes:
    """Rebuild the tagged criteria from stored filter columns."""
    if user_ids and device_types:
        return ByUsersAndDeviceTypes(
            user_ids=user_ids, device_types=[DeviceType(t) for t in device_types]
        )
    if user_ids:
        return ByUserIds(user_ids=user_ids)
    if device_types:
        return ByDeviceTypes(device_types=[DeviceType(t) for t in device_types])
    return AllEndpoints()


class BroadcastCreate(BaseModel):
    """Schema for creating a broadcast."""

    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    target_criteria: TargetCriteria = Field(default_factory=AllEndpoints)
    scheduled_for: datetime | None = None
    created_by: str = Field(min_length=1)


class BroadcastCreated(BaseModel):
    """Schema returned when a broadcast is accepted."""

    broadcast_id: int
    scheduled_for: datetime
    status: BroadcastStatus


class BroadcastStats(BaseModel):
    total_targeted: int
    total_sent: int
    total_failed: int


class BroadcastResponse(BaseModel):
    """Schema for broadcast response."""

    id: int
    title: str
    body: str
    data: dict[str, Any]
    target_criteria: TargetCriteria
    scheduled_for: datetime
    status: BroadcastStatus
    stats: BroadcastStats
    created_by: str
    created_at: datetime
    completed_at: datetime | None
    error: str | None
