"""Notification template domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from execalert.models.event import utcnow


class NotificationChannel(str, Enum):
    """Delivery channel."""

    EMAIL = "email"
    SMS = "sms"
    SLACK = "slack"
    WEBHOOK = "webhook"


class TemplateFormat(str, Enum):
    """Body format of a template."""

    HTML = "html"
    TEXT = "text"
    SLACK_BLOCKS = "slack_blocks"


# Channels absent from this table accept any format
CHANNEL_FORMATS: dict[NotificationChannel, frozenset[TemplateFormat]] = {
    NotificationChannel.EMAIL: frozenset({TemplateFormat.HTML, TemplateFormat.TEXT}),
    NotificationChannel.SMS: frozenset({TemplateFormat.TEXT}),
    NotificationChannel.SLACK: frozenset({TemplateFormat.SLACK_BLOCKS}),
}


class TemplateContent(BaseModel):
    """Authored part of a template."""

    event_type: str = Field(..., description="Event type the template renders")
    channel: NotificationChannel = Field(..., description="Delivery channel")
    format: TemplateFormat = Field(..., description="Body format")
    subject: str | None = Field(default=None, description="Subject line (email only)")
    body: str = Field(default="", description="Body with {{variable}} placeholders")
    variables: list[str] = Field(default_factory=list, description="Variables the body expects")


class NotificationTemplate(TemplateContent):
    """Stored template."""

    template_id: str = Field(..., description="Template unique identifier")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
