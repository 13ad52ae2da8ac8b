"""User notification preference models."""

import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from execalert.models.event import EventType, utcnow
from execalert.models.template import NotificationChannel

_HH_MM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class EventPreference(BaseModel):
    """Whether an event type is delivered and over which channels."""

    enabled: bool = True
    channels: list[NotificationChannel] = Field(default_factory=list)


class QuietHours(BaseModel):
    """Window during which non-critical notifications are suppressed."""

    enabled: bool = False
    start_time: str = Field(default="22:00", description="HH:MM")
    end_time: str = Field(default="07:00", description="HH:MM")
    timezone: str = Field(default="UTC", description="IANA timezone")

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        if not _HH_MM.match(value):
            raise ValueError("time must use HH:MM format")
        return value


class FrequencyLimit(BaseModel):
    """Hourly cap on non-critical notifications."""

    enabled: bool = False
    max_per_hour: int = Field(default=10, ge=1)


def default_event_preferences() -> dict[EventType, EventPreference]:
    return {
        EventType.TEST_COMPLETION: EventPreference(enabled=False, channels=[NotificationChannel.EMAIL]),
        EventType.TEST_FAILURE: EventPreference(enabled=True, channels=[NotificationChannel.EMAIL]),
        EventType.CRITICAL_ALERT: EventPreference(
            enabled=True,
            channels=[NotificationChannel.EMAIL, NotificationChannel.SMS],
        ),
        EventType.SUMMARY_REPORT: EventPreference(enabled=True, channels=[NotificationChannel.EMAIL]),
    }


class NotificationPreferences(BaseModel):
    """Per-user notification settings and contact details."""

    user_id: str
    email: str | None = None
    phone_number: str | None = None
    slack_webhook_url: str | None = None
    webhook_url: str | None = None
    preferences: dict[EventType, EventPreference] = Field(default_factory=default_event_preferences)
    quiet_hours: QuietHours | None = None
    frequency_limit: FrequencyLimit | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def for_event(self, event_type: EventType) -> EventPreference | None:
        return self.preferences.get(event_type)

    def recipient_for(self, channel: NotificationChannel) -> str | None:
        """Contact address used for a channel."""
        return {
            NotificationChannel.EMAIL: self.email,
            NotificationChannel.SMS: self.phone_number,
            NotificationChannel.SLACK: self.slack_webhook_url,
            NotificationChannel.WEBHOOK: self.webhook_url,
        }[channel]
