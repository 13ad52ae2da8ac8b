"""Prometheus metrics definitions."""

from prometheus_client import Counter, Histogram

# Execution metrics
EXECUTIONS_RECEIVED = Counter(
    "execalert_executions_received_total",
    "Total number of finished test executions received",
    ["result"],
)

# Detection metrics
ALERTS_RAISED = Counter(
    "execalert_alerts_raised_total",
    "Total number of critical alerts raised",
    ["alert_type"],
)

# Notification metrics
NOTIFICATIONS_SENT = Counter(
    "execalert_notifications_sent_total",
    "Total notifications sent",
    ["channel", "status"],
)

NOTIFICATIONS_FILTERED = Counter(
    "execalert_notifications_filtered_total",
    "Notifications dropped by user preferences",
    ["reason"],
)

RETRY_ATTEMPTS = Histogram(
    "execalert_delivery_attempts",
    "Attempts needed per channel delivery",
    ["channel"],
    buckets=(1, 2, 3, 4, 5, 8),
)

# Webhook metrics
WEBHOOK_LATENCY = Histogram(
    "execalert_webhook_latency_seconds",
    "Webhook request latency in seconds",
    ["outcome"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Event bus metrics
EVENTS_PUBLISHED = Counter(
    "execalert_events_published_total",
    "Events published to the event bus",
    ["event_type", "status"],
)
