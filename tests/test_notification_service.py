"""Tests for multi-channel notification delivery."""

import json

import httpx
import pytest

from execalert.core.config import Settings
from execalert.core.errors import DeliveryError
from execalert.delivery.retry import RetryExecutor
from execalert.models.notification import NotificationPayload, NotificationType
from execalert.models.template import NotificationChannel
from execalert.notification.channels import email as email_module
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage
from execalert.notification.channels.email import EmailChannel
from execalert.notification.channels.in_app import InAppChannel
from execalert.notification.channels.slack import SlackChannel, build_slack_payload
from execalert.notification.channels.sms import SMSChannel
from execalert.notification.channels.webhook import WebhookChannel
from execalert.notification.service import NotificationService


class FakeChannel(DeliveryChannel):
    """Records messages; fails the first ``failures`` sends."""

    def __init__(self, name: str, failures: int = 0, configured: bool = True):
        self.name = name
        self.failures = failures
        self.configured = configured
        self.attempts = 0
        self.sent: list[OutgoingMessage] = []

    @property
    def channel_type(self) -> str:
        return self.name

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def send(self, message: OutgoingMessage) -> str:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError(f"{self.name} unavailable")
        self.sent.append(message)
        return f"{self.name}-msg-{self.attempts}"


@pytest.fixture
def channels() -> dict[str, FakeChannel]:
    return {
        "email": FakeChannel("email"),
        "sms": FakeChannel("sms"),
        "slack": FakeChannel("slack"),
        "webhook": FakeChannel("webhook"),
        "in_app": FakeChannel("in_app"),
    }


@pytest.fixture
def service(settings: Settings, channels, record_sleep) -> NotificationService:
    return NotificationService(settings, channels=channels, retry_executor=RetryExecutor(sleep=record_sleep))


def payload(**overrides) -> NotificationPayload:
    values = {
        "user_id": "user-1",
        "type": NotificationType.EXECUTION_FAILED,
        "title": "Test Execution Failed",
        "message": "login-flow failed",
        "data": {"execution_id": "exec-1", "error": "<script>alert(1)</script>"},
        **overrides,
    }
    return NotificationPayload(**values)


@pytest.mark.asyncio
async def test_email_takes_precedence(service, channels) -> None:
    result = await service.send_notification(payload(email="ops@example.com", phone_number="+14155550123"))

    assert result.success is True
    assert result.message_id == "email-msg-1"
    assert channels["sms"].sent == []
    message = channels["email"].sent[0]
    assert message.recipient == "ops@example.com"
    assert message.subject == "Test Execution Failed"
    assert "Details:\n  execution_id: exec-1\n" in message.text
    assert "&lt;script&gt;" in message.html
    assert "<script>" not in message.html


@pytest.mark.asyncio
async def test_phone_routes_to_sms(service, channels) -> None:
    result = await service.send_notification(payload(phone_number="+14155550123"))

    assert result.success is True
    assert channels["sms"].sent[0].text == "Test Execution Failed\n\nlogin-flow failed"


@pytest.mark.asyncio
async def test_in_app_when_no_contact(settings: Settings) -> None:
    service = NotificationService(settings, channels={"in_app": InAppChannel()})

    result = await service.send_notification(payload())

    assert result.success is True
    assert result.message_id.startswith("in-app-")


@pytest.mark.asyncio
async def test_send_retries_transient_failures(settings, channels, service, sleeps) -> None:
    channels["email"].failures = 2

    result = await service.send_notification(payload(email="ops@example.com"))

    assert result.success is True
    assert result.attempt_count == 3
    assert sleeps == [1, 2]


@pytest.mark.asyncio
async def test_send_returns_failure_when_retries_exhausted(service, channels) -> None:
    channels["email"].failures = 10

    result = await service.send_notification(payload(email="ops@example.com"))

    assert result.success is False
    assert result.error == "email unavailable"
    assert result.attempt_count == 4
    assert channels["email"].attempts == 4


@pytest.mark.asyncio
async def test_unconfigured_channel_fails_without_attempts(service, channels) -> None:
    channels["sms"].configured = False

    result = await service.send_notification(payload(phone_number="+14155550123"))

    assert result.success is False
    assert result.error == "Channel sms is not configured"
    assert channels["sms"].attempts == 0


@pytest.mark.asyncio
async def test_deliver_html_derives_text_part(service, channels) -> None:
    result = await service.deliver(
        NotificationChannel.EMAIL,
        "ops@example.com",
        "Test Failed: login-flow",
        "<html><body><h2>Test Failed</h2><p>login-flow &amp; more</p></body></html>",
        is_html=True,
    )

    assert result.success is True
    message = channels["email"].sent[0]
    assert message.html.startswith("<html>")
    assert message.text == "Test Failed\nlogin-flow & more"


@pytest.mark.asyncio
async def test_deliver_unknown_channel_is_structured_failure(settings: Settings) -> None:
    service = NotificationService(settings, channels={})

    result = await service.deliver(NotificationChannel.SLACK, "https://hooks.example.com/x", "s", "c")

    assert result.success is False
    assert result.error == "Unsupported channel: slack"


@pytest.mark.asyncio
async def test_notify_execution_complete_emails_result(service, channels) -> None:
    result = await service.notify_execution_complete(
        "user-1", "exec-1", "login-flow", "pass", email="dev@example.com"
    )

    assert result.success
    [message] = channels["email"].sent
    assert message.recipient == "dev@example.com"
    assert message.subject == "Test Execution Complete"
    assert 'Test "login-flow" has completed with result: pass.' in message.text
    assert "  execution_id: exec-1\n" in message.text


@pytest.mark.asyncio
async def test_notify_execution_failure_without_email_goes_in_app(service, channels) -> None:
    result = await service.notify_execution_failure("user-1", "exec-1", "login-flow", "timeout waiting for page")

    assert result.success
    assert channels["email"].sent == []
    [message] = channels["in_app"].sent
    assert message.recipient == "user-1"
    assert message.text == 'Test "login-flow" failed: timeout waiting for page'
    assert message.extra == {"type": "execution_failed"}


@pytest.mark.asyncio
async def test_notify_system_error_emails_admin(service, channels) -> None:
    result = await service.notify_system_error("err-1", "detector crashed", {"detector": "suite"})

    assert result is not None and result.success
    message = channels["email"].sent[0]
    assert message.recipient == "admin@example.com"
    assert message.subject == "System Error Alert"
    assert "A system error has occurred: detector crashed" in message.text


@pytest.mark.asyncio
async def test_notify_system_error_without_admin_is_skipped(channels) -> None:
    service = NotificationService(Settings(_env_file=None), channels=channels)

    assert await service.notify_system_error("err-1", "boom") is None
    assert channels["email"].sent == []


@pytest.mark.asyncio
async def test_sms_channel_posts_to_gateway(settings: Settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"message_id": "gw-42"})

    channel = SMSChannel(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    message_id = await channel.send(OutgoingMessage(recipient="+14155550123", subject="s", text="hello"))

    assert message_id == "gw-42"
    assert str(requests[0].url) == settings.sms_gateway_url
    assert requests[0].headers["Authorization"] == "Bearer sms-key"
    assert json.loads(requests[0].content) == {"to": "+14155550123", "message": "hello"}


@pytest.mark.asyncio
async def test_sms_gateway_errors_fail_after_retries(settings: Settings, record_sleep) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    channel = SMSChannel(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    service = NotificationService(
        settings,
        channels={"sms": channel},
        retry_executor=RetryExecutor(sleep=record_sleep),
    )

    result = await service.send_notification(payload(phone_number="+14155550123"))

    assert result.success is False
    assert result.error == "SMS gateway returned status 500"


@pytest.mark.asyncio
async def test_email_channel_sends_over_smtp(settings: Settings, monkeypatch) -> None:
    sent: list[tuple] = []

    async def fake_send(message, **kwargs):
        sent.append((message, kwargs))
        return ({}, "OK")

    monkeypatch.setattr(email_module.aiosmtplib, "send", fake_send)

    message_id = await EmailChannel(settings).send(
        OutgoingMessage(recipient="ops@example.com", subject="Hi", text="plain", html="<p>rich</p>")
    )

    message, kwargs = sent[0]
    assert message["Message-ID"] == message_id
    assert message_id.endswith("@execalert.test>")
    assert message["To"] == "ops@example.com"
    assert kwargs["hostname"] == "smtp.test.local"
    assert kwargs["start_tls"] is True
    assert kwargs["use_tls"] is False
    assert [part.get_content_type() for part in message.get_payload()] == ["text/plain", "text/html"]


def test_slack_payload_uses_blocks_or_falls_back_to_text() -> None:
    blocks = build_slack_payload(
        OutgoingMessage(recipient="u", subject="Test Failed", text='{"blocks": [{"type": "divider"}]}')
    )
    plain = build_slack_payload(OutgoingMessage(recipient="u", subject="s", text="just text"))

    assert blocks == {"blocks": [{"type": "divider"}], "text": "Test Failed"}
    assert plain == {"text": "just text"}


@pytest.mark.asyncio
async def test_slack_and_webhook_channels_post_to_recipient_url() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "hooks.slack.com":
            return httpx.Response(404)
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    message = OutgoingMessage(
        recipient="https://hooks.example.com/alerts",
        subject="Test Failed",
        text="login-flow failed",
        extra={"severity": "high"},
    )

    message_id = await WebhookChannel(client).send(message)

    body = json.loads(requests[0].content)
    assert body == {"id": message_id, "subject": "Test Failed", "content": "login-flow failed", "severity": "high"}

    slack_message = OutgoingMessage(recipient="https://hooks.slack.com/services/T0/B0/x", subject="s", text="t")
    with pytest.raises(DeliveryError, match="Slack returned status 404"):
        await SlackChannel(client).send(slack_message)
