"""Notification preference Pydantic schemas."""

from pydantic import BaseModel, Field

from pushengine.models.enums import DigestFrequency

HH_MM = r"^([01]\d|2[0-3]):[0-5]\d$"


class PreferencesUpdate(BaseModel):
    """Schema for updating notification preferences."""

    global_enabled: bool | None = None
    categories: dict[str, bool] | None = None
    quiet_hours_enabled: bool | None = None
    quiet_hours_start: str | None = Field(default=None, pattern=HH_MM)
    quiet_hours_end: str | None = Field(default=None, pattern=HH_MM)
    quiet_hours_timezone: str | None = Field(default=None, max_length=50)
    frequency: DigestFrequency | None = None


class PreferencesResponse(BaseModel):
    """Schema for notification preferences response."""

    user_id: str
    global_enabled: bool
    categories: dict[str, bool]
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str
    quiet_hours_timezone: str
    frequency: DigestFrequency

    model_config = {"from_attributes": True}
