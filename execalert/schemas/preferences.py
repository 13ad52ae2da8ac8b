"""Preferences API schemas."""

from pydantic import BaseModel

from execalert.models.event import EventType
from execalert.models.preferences import EventPreference, FrequencyLimit, QuietHours


class PreferencesUpdate(BaseModel):
    """Schema for updating notification preferences; omitted fields are kept."""

    email: str | None = None
    phone_number: str | None = None
    slack_webhook_url: str | None = None
    webhook_url: str | None = None
    preferences: dict[EventType, EventPreference] | None = None
    quiet_hours: QuietHours | None = None
    frequency_limit: FrequencyLimit | None = None
