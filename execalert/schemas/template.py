"""Template API schemas."""

from pydantic import BaseModel, Field

from execalert.models.template import NotificationChannel, TemplateFormat


class TemplateCreate(BaseModel):
    """Schema for creating a template."""

    event_type: str = Field(..., min_length=1, description="Event type the template renders")
    channel: NotificationChannel
    format: TemplateFormat
    subject: str | None = Field(default=None, max_length=200)
    body: str = Field(..., min_length=1, description="Body with {{variable}} placeholders")
    variables: list[str] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    """Schema for partially updating a template."""

    event_type: str | None = Field(default=None, min_length=1)
    channel: NotificationChannel | None = None
    format: TemplateFormat | None = None
    subject: str | None = Field(default=None, max_length=200)
    body: str | None = None
    variables: list[str] | None = None


class SeedResult(BaseModel):
    created: int
    template_ids: list[str]
