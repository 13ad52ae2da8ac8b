"""Notification event and critical alert domain models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Notification event types."""

    TEST_COMPLETION = "test_completion"
    TEST_FAILURE = "test_failure"
    CRITICAL_ALERT = "critical_alert"
    SUMMARY_REPORT = "summary_report"


class AlertType(str, Enum):
    """Failure pattern that raised a critical alert."""

    SUITE_FAILURE_THRESHOLD = "suite_failure_threshold"
    CONSECUTIVE_FAILURES = "consecutive_failures"


class AlertDetails(BaseModel):
    """Measurements backing a critical alert."""

    failure_rate: float | None = None
    consecutive_failures: int | None = None
    affected_tests: list[str] | None = None
    last_failure: datetime | None = None
    error_message: str | None = None


class CriticalAlert(BaseModel):
    """Detected failure pattern, wrapped into an event before delivery."""

    alert_type: AlertType
    test_case_id: str | None = None
    test_suite_id: str | None = None
    suite_execution_id: str | None = None
    severity: Literal["critical"] = "critical"
    reason: str
    details: AlertDetails = Field(default_factory=AlertDetails)
    timestamp: datetime = Field(default_factory=utcnow)


class EventPayload(BaseModel):
    """Event payload; unknown keys are kept for templates and webhooks."""

    model_config = ConfigDict(frozen=True, extra="allow")

    project_id: str
    triggered_by: str
    execution_id: str | None = None
    test_case_id: str | None = None
    test_suite_id: str | None = None
    suite_execution_id: str | None = None
    status: str | None = None
    result: str | None = None
    duration: int | None = None
    error_message: str | None = None
    screenshots: list[str] | None = None
    alert_type: AlertType | None = None
    severity: str | None = None
    details: AlertDetails | None = None
    report_data: dict[str, Any] | None = None


class NotificationEvent(BaseModel):
    """Immutable event envelope consumed by the publisher and dispatcher."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    event_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    payload: EventPayload

    @property
    def is_critical(self) -> bool:
        return self.event_type == EventType.CRITICAL_ALERT
