"""Notification delivery domain models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from execalert.models.template import NotificationChannel


class NotificationType(str, Enum):
    """Kind of direct notification sent through the dispatcher."""

    EXECUTION_COMPLETE = "execution_complete"
    EXECUTION_FAILED = "execution_failed"
    CRITICAL_ALERT = "critical_alert"
    SYSTEM_ERROR = "system_error"


class NotificationPayload(BaseModel):
    """Direct notification request; routed by which contact field is set."""

    user_id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None
    email: str | None = None
    phone_number: str | None = None


class DeliveryResult(BaseModel):
    """Outcome of one channel send."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    attempt_count: int = Field(default=1, ge=0)


class WebhookDeliveryResult(BaseModel):
    """Outcome of one webhook POST."""

    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    duration: int = Field(default=0, ge=0, description="Elapsed milliseconds")


class DeliveryStatus(str, Enum):
    """Delivery status of a history record."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class DeliveryMethod(str, Enum):
    """Path a notification took."""

    CHANNEL = "channel"
    WEBHOOK = "webhook"
    FALLBACK = "fallback"


class HistoryMetadata(BaseModel):
    """Execution references kept on a history record."""

    execution_id: str | None = None
    test_case_id: str | None = None
    project_id: str | None = None


class NotificationHistoryRecord(BaseModel):
    """Append-only audit record of a notification attempt."""

    notification_id: str
    user_id: str
    event_type: str
    event_id: str
    channel: NotificationChannel
    delivery_method: DeliveryMethod = DeliveryMethod.CHANNEL
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    recipient: str
    message_id: str | None = None
    error_message: str | None = None
    retry_count: int = Field(default=0, ge=0)
    sent_at: datetime
    delivered_at: datetime | None = None
    metadata: HistoryMetadata = Field(default_factory=HistoryMetadata)
    ttl: int = Field(..., description="Expiry as epoch seconds")


class HistoryPage(BaseModel):
    """One page of history records."""

    records: list[NotificationHistoryRecord] = Field(default_factory=list)
    next_token: str | None = None


class ProcessorStatus(str, Enum):
    """Outcome of processing one event for one channel."""

    SENT = "sent"
    FAILED = "failed"
    FILTERED = "filtered"
    SKIPPED = "skipped"


class ProcessorResult(BaseModel):
    """Per-channel processing outcome."""

    event_id: str
    status: ProcessorStatus
    channel: NotificationChannel | None = None
    delivery_method: DeliveryMethod | None = None
    notification_id: str | None = None
    error_message: str | None = None


class WebhookMetadata(BaseModel):
    """Sender identification attached to every webhook payload."""

    source: str
    version: str


class WebhookPayload(BaseModel):
    """Body POSTed to the automation webhook."""

    event_type: str
    event_id: str
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: WebhookMetadata | None = None
