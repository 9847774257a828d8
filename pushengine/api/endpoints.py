"""Device endpoint API: register, list, deactivate, prune and validate tokens."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from pushengine.api.dependencies import get_endpoint_registry, get_token_validator
from pushengine.models.endpoint import DeviceEndpoint
from pushengine.schemas.endpoint import (
    EndpointList,
    EndpointRegister,
    EndpointResponse,
    TokenList,
    TokenValidationResponse,
)
from pushengine.services.dispatcher import BatchDispatcher, TokenValidation
from pushengine.services.endpoint_registry import EndpointRegistry

router = APIRouter(prefix="/api/v1/endpoints", tags=["endpoints"])


@router.post("", response_model=EndpointResponse, status_code=status.HTTP_201_CREATED)
def register_endpoint(
    endpoint: EndpointRegister,
    registry: Annotated[EndpointRegistry, Depends(get_endpoint_registry)],
) -> DeviceEndpoint:
    """Register a device token, or refresh it if already known."""
    return registry.register(
        user_id=endpoint.user_id,
        token=endpoint.token,
        device_id=endpoint.device_id,
        device_type=endpoint.device_type,
        app_version=endpoint.app_version,
    )


@router.get("/users/{user_id}", response_model=EndpointList)
def list_user_endpoints(
    user_id: str,
    registry: Annotated[EndpointRegistry, Depends(get_endpoint_registry)],
    active_only: bool = True,
) -> EndpointList:
    """List a user's endpoints, newest first."""
    endpoints = registry.list_for_user(user_id, active_only=active_only)
    return EndpointList(
        user_id=user_id,
        endpoints=[EndpointResponse.model_validate(e) for e in endpoints],
        count=len(endpoints),
    )


@router.delete("/{endpoint_id}")
def deactivate_endpoint(
    endpoint_id: int,
    registry: Annotated[EndpointRegistry, Depends(get_endpoint_registry)],
) -> dict:
    """Deactivate an endpoint."""
    registry.deactivate(endpoint_id)
    return {"message": "Endpoint deactivated"}


@router.post("/cleanup")
def cleanup_invalid_tokens(
    body: TokenList,
    registry: Annotated[EndpointRegistry, Depends(get_endpoint_registry)],
) -> dict:
    """Deactivate tokens the provider reported as invalid."""
    deactivated = registry.prune_invalid(body.tokens)
    return {"message": f"Deactivated {deactivated} invalid tokens", "deactivated": deactivated}


@router.post("/validate", response_model=TokenValidationResponse)
def validate_tokens(
    body: TokenList,
    validator: Annotated[BatchDispatcher, Depends(get_token_validator)],
) -> TokenValidation:
    """Check tokens against the provider without delivering anything."""
    return validator.validate_tokens(body.tokens)
