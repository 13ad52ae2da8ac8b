"""Notification preferences API routes."""

from fastapi import APIRouter

from execalert.api.deps import PreferencesStoreDep
from execalert.models.preferences import NotificationPreferences
from execalert.schemas.common import APIResponse
from execalert.schemas.preferences import PreferencesUpdate
from execalert.security.sanitizer import sanitize_contact_details

router = APIRouter(prefix="/preferences", tags=["preferences"])

_CONTACT_FIELDS = ("email", "phone_number", "webhook_url", "slack_webhook_url")


@router.get("/{user_id}", response_model=APIResponse[NotificationPreferences])
async def get_preferences(
    user_id: str,
    store: PreferencesStoreDep,
) -> APIResponse[NotificationPreferences]:
    """Get preferences; users without stored preferences get the defaults."""
    return APIResponse(data=await store.get(user_id))


@router.put("/{user_id}", response_model=APIResponse[NotificationPreferences])
async def update_preferences(
    user_id: str,
    data: PreferencesUpdate,
    store: PreferencesStoreDep,
) -> APIResponse[NotificationPreferences]:
    """Update preferences. Contact details are validated and normalized first."""
    changes = data.model_dump(exclude_unset=True)

    contact = sanitize_contact_details(changes)
    for field in _CONTACT_FIELDS:
        if changes.get(field):
            changes[field] = getattr(contact, field)

    return APIResponse(data=await store.update(user_id, changes))
