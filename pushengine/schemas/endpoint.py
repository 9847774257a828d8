"""Device endpoint Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from pushengine.models.enums import DeviceType


class EndpointRegister(BaseModel):
    """Schema for registering a device token."""

    user_id: str = Field(min_length=1, max_length=64)
    token: str = Field(min_length=1, max_length=512)
    device_id: str = Field(min_length=1, max_length=255)
    device_type: DeviceType
    app_version: str | None = Field(default=None, max_length=50)


class EndpointResponse(BaseModel):
    """Schema for device endpoint response."""

    id: int
    user_id: str
    token: str
    device_id: str
    device_type: DeviceType
    app_version: str | None
    is_active: bool
    last_used_at: datetime
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class EndpointList(BaseModel):
    """Schema for a user's endpoints."""

    user_id: str
    endpoints: list[EndpointResponse]
    count: int


class TokenList(BaseModel):
    """Schema for a batch of provider tokens."""

    tokens: list[str] = Field(min_length=1)


class TokenValidationResponse(BaseModel):
    valid: list[str]
    invalid: list[dict[str, str]]

    model_config = {"from_attributes": True}
