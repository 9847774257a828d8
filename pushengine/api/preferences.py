"""Notification preference API."""

from typing import Annotated

from fastapi import APIRouter, Depends

from pushengine.api.dependencies import get_preference_filter
from pushengine.models.preferences import NotificationPreferences
from pushengine.schemas.preferences import PreferencesResponse, PreferencesUpdate
from pushengine.services.preference_filter import PreferenceFilter

router = APIRouter(prefix="/api/v1/preferences", tags=["preferences"])


@router.get("/{user_id}", response_model=PreferencesResponse)
def get_preferences(
    user_id: str,
    preferences: Annotated[PreferenceFilter, Depends(get_preference_filter)],
) -> NotificationPreferences:
    """Get a user's notification preferences, creating defaults if needed."""
    return preferences.get_preferences(user_id)


@router.put("/{user_id}", response_model=PreferencesResponse)
def update_preferences(
    user_id: str,
    update: PreferencesUpdate,
    preferences: Annotated[PreferenceFilter, Depends(get_preference_filter)],
) -> NotificationPreferences:
    """Update a user's notification preferences."""
    return preferences.update_preferences(user_id, update.model_dump(exclude_unset=True))
