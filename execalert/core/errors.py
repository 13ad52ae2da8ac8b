"""Exception hierarchy."""


class ExecAlertError(Exception):
    """Base class for application errors."""


class TemplateValidationError(ExecAlertError):
    """Template failed syntax or channel/format validation."""


class TemplateNotFoundError(ExecAlertError):
    """Template does not exist."""

    def __init__(self, template_id: str):
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class SanitizationError(ExecAlertError, ValueError):
    """User-supplied contact data is malformed or not allowed."""


class ChannelConfigurationError(ExecAlertError):
    """A delivery channel is missing required configuration."""


class DeliveryError(ExecAlertError):
    """A delivery attempt failed and may be retried."""
