"""Input sanitization and sensitive data redaction.

Contact data (email, phone number, webhook URLs) supplied by users is cleaned and
validated before it is stored. Anything headed for logs or outgoing messages is
passed through a :class:`Redactor`, whose pattern list is plain data so new rules
can be configured without changing the engine.
"""

import ipaddress
import re
from collections.abc import Iterable, Mapping
from typing import Any

import httpx
from pydantic import BaseModel

from execalert.core.errors import SanitizationError

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_EMAIL_RE = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$")

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15

# (pattern, replacement); inline flags keep the list serializable
DEFAULT_SENSITIVE_PATTERNS: list[tuple[str, str]] = [
    (r"AKIA[0-9A-Z]{16}", "[REDACTED_AWS_KEY]"),
    (r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+", "[REDACTED_JWT]"),
    (r"\b[A-Za-z0-9]{32,}\b", "[REDACTED_TOKEN]"),
    (r"(?i)password[\"\s:=]+[^\s\"]+", "password=[REDACTED]"),
    (r"(?i)pwd[\"\s:=]+[^\s\"]+", "pwd=[REDACTED]"),
    (r"(?i)pass[\"\s:=]+[^\s\"]+", "pass=[REDACTED]"),
    (r"(?i)api[_-]?key[\"\s:=]+[^\s\"]+", "api_key=[REDACTED]"),
    (r"(?i)secret[_-]?key[\"\s:=]+[^\s\"]+", "secret_key=[REDACTED]"),
    (r"(?i)Bearer\s+[A-Za-z0-9\-._~+/]+=*", "Bearer [REDACTED]"),
]

DEFAULT_PII_PATTERNS: list[tuple[str, str]] = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", "[EMAIL_REDACTED]"),
    (r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b", "[CC_REDACTED]"),
    (r"\b\d{3}-\d{2}-\d{4}\b", "[SSN_REDACTED]"),
    (r"\+\d{10,15}\b", "[PHONE_REDACTED]"),
    (r"(?<![\w-])\(?\d{3}\)?[-.\s]?\d{3}[-.\s]\d{4}(?![\w-])", "[PHONE_REDACTED]"),
]


class Redactor:
    """Applies an ordered list of (pattern, replacement) rules to text."""

    def __init__(self, patterns: Iterable[tuple[str, str]]):
        self._rules = [(re.compile(pattern), replacement) for pattern, replacement in patterns]

    def redact(self, text: str) -> str:
        if not text:
            return ""
        for pattern, replacement in self._rules:
            text = pattern.sub(replacement, text)
        return text

    def redact_value(self, value: Any) -> Any:
        """Redact strings nested in dicts and lists, leaving other values as-is."""
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, Mapping):
            return {key: self.redact_value(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.redact_value(item) for item in value)
        return value


_sensitive = Redactor(DEFAULT_SENSITIVE_PATTERNS)
_pii = Redactor(DEFAULT_PII_PATTERNS)


def filter_sensitive_data(content: str) -> str:
    """Strip passwords, API keys and tokens from outgoing notification content."""
    return _sensitive.redact(content)


def redact_pii(message: str) -> str:
    """Strip emails, phone numbers and similar personal data from log text."""
    return _pii.redact(message)


def sanitize_string(value: str) -> str:
    """Remove null bytes and control characters (except newline and tab) and trim."""
    if not value:
        return ""
    return _CONTROL_CHARS.sub("", value.replace("\0", "")).strip()


def sanitize_url(url: str) -> str:
    """Validate an outbound URL: http(s) only, no loopback or private hosts.

    Raises:
        SanitizationError: If the URL is malformed or points somewhere not allowed
    """
    if not url:
        return ""

    cleaned = sanitize_string(url)
    try:
        parsed = httpx.URL(cleaned)
    except httpx.InvalidURL as e:
        raise SanitizationError(f"Invalid URL: {e}") from e

    if parsed.scheme not in ("http", "https"):
        raise SanitizationError("Invalid URL: Invalid protocol")

    host = parsed.host.lower()
    if not host:
        raise SanitizationError("Invalid URL: Missing host")
    if host == "localhost" or _is_private_address(host):
        raise SanitizationError("Invalid URL: Private IP addresses not allowed")

    return str(parsed)


def _is_private_address(host: str) -> bool:
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local


def sanitize_email(email: str) -> str:
    """Lowercase and validate an email address.

    Raises:
        SanitizationError: If the address is malformed
    """
    if not email:
        return ""
    cleaned = sanitize_string(email).lower()
    if not _EMAIL_RE.match(cleaned):
        raise SanitizationError("Invalid email format")
    return cleaned


def sanitize_phone_number(phone: str) -> str:
    """Normalize a phone number to digits with an optional leading '+'.

    Raises:
        SanitizationError: If it has fewer than 10 or more than 15 digits
    """
    if not phone:
        return ""
    cleaned = re.sub(r"[^\d+]", "", phone)
    digits = cleaned.replace("+", "")
    if "+" in cleaned:
        cleaned = f"+{digits}"

    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        raise SanitizationError("Invalid phone number length")
    return cleaned


class SanitizedContact(BaseModel):
    """Validated contact details."""

    email: str | None = None
    phone_number: str | None = None
    webhook_url: str | None = None
    slack_webhook_url: str | None = None


def sanitize_contact_details(details: Mapping[str, Any]) -> SanitizedContact:
    """Validate every contact field present in ``details``.

    Raises:
        SanitizationError: Naming the offending field
    """
    checks = (
        ("email", "email", sanitize_email),
        ("phone_number", "phone number", sanitize_phone_number),
        ("webhook_url", "webhook URL", sanitize_url),
        ("slack_webhook_url", "Slack webhook URL", sanitize_url),
    )
    sanitized: dict[str, str] = {}
    for field, label, sanitizer in checks:
        value = details.get(field)
        if not value:
            continue
        try:
            sanitized[field] = sanitizer(value)
        except SanitizationError as e:
            raise SanitizationError(f"Invalid {label}: {e}") from e
    return SanitizedContact(**sanitized)
