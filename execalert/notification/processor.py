"""Notification event processing.

For each event: apply the user's preferences, render a template per
preferred channel, strip secrets from the rendered content, deliver it and
record the attempt in the history log.

Critical alerts skip the event-type, quiet-hours and frequency checks.
"""

from datetime import datetime, timezone
from typing import Any, Callable

from execalert.core.logging import get_logger
from execalert.models.event import EventType, NotificationEvent
from execalert.models.notification import (
    DeliveryMethod,
    DeliveryStatus,
    HistoryMetadata,
    ProcessorResult,
    ProcessorStatus,
    WebhookPayload,
)
from execalert.models.preferences import NotificationPreferences
from execalert.models.template import NotificationChannel, TemplateFormat
from execalert.notification.service import NotificationService
from execalert.notification.webhook import WebhookIntegration
from execalert.observability.metrics import NOTIFICATIONS_FILTERED
from execalert.security.sanitizer import Redactor, filter_sensitive_data
from execalert.storage.history_store import NotificationHistoryStore
from execalert.storage.preferences_store import PreferencesStore, in_quiet_hours
from execalert.templates.service import TemplateService, render_template

logger = get_logger(__name__)


def build_render_context(event: NotificationEvent) -> dict[str, Any]:
    """Template variables available for an event."""
    payload = event.payload
    details = payload.details

    context: dict[str, Any] = {
        "test_name": payload.test_case_id,
        "test_case_id": payload.test_case_id,
        "execution_id": payload.execution_id,
        "status": payload.status,
        "result": payload.result,
        "duration": f"{payload.duration}ms" if payload.duration is not None else None,
        "timestamp": event.timestamp.isoformat(),
        "error_message": payload.error_message,
        "screenshot_urls": payload.screenshots,
        "user_name": payload.triggered_by,
        "project_name": payload.project_id,
        "report_data": payload.report_data,
    }

    if event.is_critical:
        context.update(
            reason=payload.error_message,
            alert_type=payload.alert_type,
            failure_rate=f"{details.failure_rate}%" if details and details.failure_rate is not None else None,
            consecutive_failures=details.consecutive_failures if details else None,
            affected_tests=details.affected_tests if details else None,
        )

    if payload.report_data:
        context.update(report_context(payload.report_data))

    # Extra keys carried on the payload
    for key, value in (payload.model_extra or {}).items():
        context.setdefault(key, value)

    return context


def report_context(report_data: dict[str, Any]) -> dict[str, Any]:
    """Flatten summary report data into template variables."""
    period = report_data.get("period") or {}
    stats = report_data.get("stats") or {}
    trends = report_data.get("trends") or {}
    return {
        "report_type": report_data.get("report_type"),
        "period_start": period.get("start_date"),
        "period_end": period.get("end_date"),
        "total_executions": stats.get("total_executions"),
        "pass_rate": f"{stats.get('pass_rate', 0)}%",
        "fail_rate": f"{stats.get('fail_rate', 0)}%",
        "error_rate": f"{stats.get('error_rate', 0)}%",
        "average_duration": f"{stats.get('average_duration', 0)}ms",
        "execution_change": f"{trends.get('execution_change', 0):+}%",
        "pass_rate_change": f"{trends.get('pass_rate_change', 0):+} pts",
        "top_failing_tests": [
            f"{test['test_name']} ({test['failure_count']})" for test in report_data.get("top_failing_tests") or []
        ]
        or None,
    }


class NotificationProcessor:
    """Turns notification events into deliveries."""

    def __init__(
        self,
        preferences: PreferencesStore,
        templates: TemplateService,
        history: NotificationHistoryStore,
        notifications: NotificationService,
        webhook: WebhookIntegration,
        redactor: Redactor | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize processor.

        Args:
            preferences: User preference store
            templates: Template service
            history: Delivery history store
            notifications: Channel delivery service
            webhook: Automation webhook integration
            redactor: Secret filter for rendered content; defaults to the
                built-in patterns
            clock: Current time source, used for quiet hours
        """
        self._preferences = preferences
        self._templates = templates
        self._history = history
        self._notifications = notifications
        self._webhook = webhook
        self._filter = redactor.redact if redactor else filter_sensitive_data
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def process_event(self, event: NotificationEvent) -> list[ProcessorResult]:
        """Process one notification event.

        Returns:
            One result per channel attempted, or a single result explaining
            why nothing was sent
        """
        user_id = event.payload.triggered_by
        logger.info(
            "Processing notification",
            event_id=event.event_id,
            event_type=event.event_type.value,
            user_id=user_id,
        )

        preferences = await self._preferences.get(user_id)

        if event.is_critical:
            logger.info("Critical alert, bypassing preference checks", event_id=event.event_id)
        else:
            reason = await self._suppression_reason(event, preferences)
            if reason:
                return [await self._record_filtered(event, reason)]

        event_preference = preferences.for_event(event.event_type)
        channels = list(event_preference.channels) if event_preference else []
        if not channels:
            logger.info("No delivery channels configured", user_id=user_id, event_type=event.event_type.value)
            return [
                ProcessorResult(
                    event_id=event.event_id,
                    status=ProcessorStatus.SKIPPED,
                    error_message="No delivery channels configured",
                )
            ]

        context = build_render_context(event)
        results = []
        for channel in channels:
            try:
                results.append(await self._deliver(event, preferences, channel, context))
            except Exception as e:
                logger.error(
                    "Failed to deliver notification",
                    event_id=event.event_id,
                    channel=channel.value,
                    error=str(e),
                    exc_info=True,
                )
                results.append(
                    ProcessorResult(
                        event_id=event.event_id,
                        status=ProcessorStatus.FAILED,
                        channel=channel,
                        error_message=str(e),
                    )
                )
        return results

    async def _suppression_reason(
        self,
        event: NotificationEvent,
        preferences: NotificationPreferences,
    ) -> str | None:
        event_preference = preferences.for_event(event.event_type)
        if not event_preference or not event_preference.enabled:
            return "Notifications disabled for event type"

        if in_quiet_hours(preferences.quiet_hours, self._clock()):
            return "Suppressed due to quiet hours"

        if not await self._preferences.within_frequency_limit(preferences):
            return "Rate limited due to frequency limit"

        return None

    async def _record_filtered(self, event: NotificationEvent, reason: str) -> ProcessorResult:
        logger.info("Notification filtered", event_id=event.event_id, reason=reason)
        NOTIFICATIONS_FILTERED.labels(reason=_reason_label(reason)).inc()

        record = await self._history.record(
            user_id=event.payload.triggered_by,
            event_type=event.event_type.value,
            event_id=event.event_id,
            channel=NotificationChannel.EMAIL,
            recipient=event.payload.triggered_by,
            delivery_status=DeliveryStatus.FAILED,
            error_message=reason,
            metadata=_history_metadata(event),
        )
        return ProcessorResult(
            event_id=event.event_id,
            status=ProcessorStatus.FILTERED,
            notification_id=record.notification_id,
            error_message=reason,
        )

    async def _deliver(
        self,
        event: NotificationEvent,
        preferences: NotificationPreferences,
        channel: NotificationChannel,
        context: dict[str, Any],
    ) -> ProcessorResult:
        template = await self._templates.get_template(event.event_type.value, channel)
        if not template:
            logger.warning("No template found", event_type=event.event_type.value, channel=channel.value)
            return ProcessorResult(
                event_id=event.event_id,
                status=ProcessorStatus.SKIPPED,
                channel=channel,
                error_message="No template found",
            )

        recipient = preferences.recipient_for(channel)
        if not recipient and channel == NotificationChannel.EMAIL:
            recipient = preferences.user_id if "@" in preferences.user_id else None
        if not recipient:
            logger.warning("No recipient configured for channel", user_id=preferences.user_id, channel=channel.value)
            return ProcessorResult(
                event_id=event.event_id,
                status=ProcessorStatus.SKIPPED,
                channel=channel,
                error_message="No recipient configured",
            )

        content = self._filter(render_template(template, context))
        subject = self._filter(
            render_template(template.model_copy(update={"body": template.subject}), context)
            if template.subject
            else _default_subject(event)
        )

        method = DeliveryMethod.CHANNEL
        status = DeliveryStatus.FAILED
        message_id = None
        error = None
        retry_count = 0

        if self._webhook.is_enabled():
            method = DeliveryMethod.WEBHOOK
            webhook_result = await self._webhook.send_to_webhook(
                WebhookPayload(
                    event_type=event.event_type.value,
                    event_id=event.event_id,
                    timestamp=event.timestamp,
                    data=event.payload.model_dump(mode="json", exclude_none=True),
                )
            )
            if webhook_result.success:
                status = DeliveryStatus.SENT
            else:
                logger.warning("Webhook delivery failed, falling back", error=webhook_result.error_message)
                method = DeliveryMethod.FALLBACK
                error = webhook_result.error_message

        if status != DeliveryStatus.SENT:
            result = await self._notifications.deliver(
                channel,
                recipient,
                subject,
                content,
                is_html=template.format == TemplateFormat.HTML,
            )
            retry_count = max(result.attempt_count - 1, 0)
            if result.success:
                status = DeliveryStatus.SENT
                message_id = result.message_id
                error = None
            else:
                error = result.error

        record = await self._history.record(
            user_id=preferences.user_id,
            event_type=event.event_type.value,
            event_id=event.event_id,
            channel=channel,
            recipient=recipient,
            delivery_method=method,
            delivery_status=status,
            message_id=message_id,
            error_message=error,
            retry_count=retry_count,
            metadata=_history_metadata(event),
        )

        logger.info(
            "Notification processed",
            event_id=event.event_id,
            channel=channel.value,
            delivery_method=method.value,
            delivery_status=status.value,
        )
        return ProcessorResult(
            event_id=event.event_id,
            status=ProcessorStatus.SENT if status == DeliveryStatus.SENT else ProcessorStatus.FAILED,
            channel=channel,
            delivery_method=method,
            notification_id=record.notification_id,
            error_message=error,
        )


def _history_metadata(event: NotificationEvent) -> HistoryMetadata:
    return HistoryMetadata(
        execution_id=event.payload.execution_id,
        test_case_id=event.payload.test_case_id,
        project_id=event.payload.project_id,
    )


def _default_subject(event: NotificationEvent) -> str:
    if event.event_type == EventType.CRITICAL_ALERT:
        return "Critical Alert"
    return f"Test Execution {event.payload.status or 'Completed'}"


def _reason_label(reason: str) -> str:
    if "quiet" in reason:
        return "quiet_hours"
    if "frequency" in reason:
        return "frequency_limit"
    return "disabled"
