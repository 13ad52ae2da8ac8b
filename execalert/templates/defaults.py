"""Default notification templates seeded on first run."""

from execalert.models.event import EventType
from execalert.models.template import NotificationChannel, TemplateContent, TemplateFormat

_EMAIL_ROW = (
    '<tr><td style="padding: 8px; border: 1px solid #ddd;"><strong>{label}:</strong></td>'
    '<td style="padding: 8px; border: 1px solid #ddd;">{{{{{name}}}}}</td></tr>'
)


def _email_html(heading: str, color: str, intro: str, rows: list[tuple[str, str]]) -> str:
    table = "\n".join(_EMAIL_ROW.format(label=label, name=name) for label, name in rows)
    return f"""<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <h2 style="color: {color};">{heading}</h2>
    <p>{intro}</p>
    <table style="border-collapse: collapse; width: 100%; margin: 20px 0;">
{table}
    </table>
    <p style="margin-top: 20px; color: #666; font-size: 12px;">
      This is an automated notification from the test execution system.
    </p>
  </body>
</html>"""


def _slack_blocks(title: str, fields: list[tuple[str, str]]) -> str:
    # Closing braces are kept apart so only template tokens form "}}"
    lines = "\\n".join(f"*{label}:* {{{{{name}}}}}" for label, name in fields)
    return (
        '{ "blocks": [ '
        f'{{ "type": "header", "text": {{ "type": "plain_text", "text": "{title}" }} }}, '
        f'{{ "type": "section", "text": {{ "type": "mrkdwn", "text": "{lines}" }} }} '
        "] }"
    )


_EXECUTION_ROWS = [
    ("Test Name", "test_name"),
    ("Execution ID", "execution_id"),
    ("Status", "status"),
    ("Result", "result"),
    ("Duration", "duration"),
    ("Timestamp", "timestamp"),
]

DEFAULT_TEMPLATES: list[TemplateContent] = [
    # Test completion
    TemplateContent(
        event_type=EventType.TEST_COMPLETION.value,
        channel=NotificationChannel.EMAIL,
        format=TemplateFormat.HTML,
        subject="Test Completed: {{test_name}}",
        body=_email_html(
            "Test Completed Successfully",
            "#4CAF50",
            "Your test execution has completed.",
            _EXECUTION_ROWS,
        ),
    ),
    TemplateContent(
        event_type=EventType.TEST_COMPLETION.value,
        channel=NotificationChannel.SMS,
        format=TemplateFormat.TEXT,
        body="Test {{test_name}} completed: {{result}} in {{duration}}.",
    ),
    TemplateContent(
        event_type=EventType.TEST_COMPLETION.value,
        channel=NotificationChannel.SLACK,
        format=TemplateFormat.SLACK_BLOCKS,
        body=_slack_blocks(
            "Test Completed",
            [("Test", "test_name"), ("Result", "result"), ("Duration", "duration")],
        ),
    ),
    # Test failure
    TemplateContent(
        event_type=EventType.TEST_FAILURE.value,
        channel=NotificationChannel.EMAIL,
        format=TemplateFormat.HTML,
        subject="Test Failed: {{test_name}}",
        body=_email_html(
            "Test Failed",
            "#f44336",
            "A test execution has failed.",
            [*_EXECUTION_ROWS, ("Error", "error_message"), ("Screenshots", "screenshot_urls")],
        ),
    ),
    TemplateContent(
        event_type=EventType.TEST_FAILURE.value,
        channel=NotificationChannel.SMS,
        format=TemplateFormat.TEXT,
        body="Test {{test_name}} FAILED: {{error_message}}",
    ),
    TemplateContent(
        event_type=EventType.TEST_FAILURE.value,
        channel=NotificationChannel.SLACK,
        format=TemplateFormat.SLACK_BLOCKS,
        body=_slack_blocks(
            "Test Failed",
            [("Test", "test_name"), ("Execution", "execution_id"), ("Error", "error_message")],
        ),
    ),
    # Critical alert
    TemplateContent(
        event_type=EventType.CRITICAL_ALERT.value,
        channel=NotificationChannel.EMAIL,
        format=TemplateFormat.HTML,
        subject="CRITICAL: {{reason}}",
        body=_email_html(
            "Critical Alert",
            "#b71c1c",
            "{{reason}}",
            [
                ("Alert Type", "alert_type"),
                ("Project", "project_name"),
                ("Test Case", "test_case_id"),
                ("Failure Rate", "failure_rate"),
                ("Consecutive Failures", "consecutive_failures"),
                ("Affected Tests", "affected_tests"),
                ("Last Error", "error_message"),
                ("Timestamp", "timestamp"),
            ],
        ),
    ),
    TemplateContent(
        event_type=EventType.CRITICAL_ALERT.value,
        channel=NotificationChannel.SMS,
        format=TemplateFormat.TEXT,
        body="CRITICAL ALERT: {{reason}} ({{project_name}})",
    ),
    TemplateContent(
        event_type=EventType.CRITICAL_ALERT.value,
        channel=NotificationChannel.SLACK,
        format=TemplateFormat.SLACK_BLOCKS,
        body=_slack_blocks(
            "Critical Alert",
            [("Reason", "reason"), ("Type", "alert_type"), ("Affected", "affected_tests")],
        ),
    ),
    # Summary report
    TemplateContent(
        event_type=EventType.SUMMARY_REPORT.value,
        channel=NotificationChannel.EMAIL,
        format=TemplateFormat.HTML,
        subject="Test Execution Summary Report ({{report_type}})",
        body=_email_html(
            "Test Execution Summary Report",
            "#2196F3",
            "Here is your test execution summary for the reporting period.",
            [
                ("Report Type", "report_type"),
                ("Period Start", "period_start"),
                ("Period End", "period_end"),
                ("Total Executions", "total_executions"),
                ("Pass Rate", "pass_rate"),
                ("Fail Rate", "fail_rate"),
                ("Error Rate", "error_rate"),
                ("Average Duration", "average_duration"),
                ("Executions vs Previous Period", "execution_change"),
                ("Pass Rate vs Previous Period", "pass_rate_change"),
                ("Top Failing Tests", "top_failing_tests"),
            ],
        ),
    ),
]
