"""Notification template lookup, rendering and validation.

Rendering is lenient: a missing variable renders as an empty string so a
degraded message still goes out. Authoring is strict: a template that fails
validation is never written.
"""

import json
import re
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from execalert.core.errors import TemplateNotFoundError, TemplateValidationError
from execalert.core.logging import get_logger
from execalert.models.template import (
    CHANNEL_FORMATS,
    NotificationChannel,
    NotificationTemplate,
    TemplateContent,
)
from execalert.storage.template_store import TemplateStore
from execalert.templates.defaults import DEFAULT_TEMPLATES

logger = get_logger(__name__)

TOKEN_PATTERN = re.compile(r"\{\{(\w+)\}\}")
_ANY_TOKEN = re.compile(r"\{\{(.*?)\}\}")
_VARIABLE_NAME = re.compile(r"^\w+$")

_IMMUTABLE_FIELDS = frozenset({"template_id", "created_at", "updated_at"})


def _stringify(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    if isinstance(value, BaseModel):
        return value.model_dump_json(exclude_none=True)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def render_template(template: TemplateContent, context: Mapping[str, Any]) -> str:
    """Substitute ``{{name}}`` tokens from ``context``.

    Missing or None values render as an empty string, lists are joined with
    ", ", dicts and models are serialized to JSON.
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = context.get(name)
        if value is None:
            logger.warning("Template variable missing, using empty string", variable=name)
            return ""
        return _stringify(value)

    return TOKEN_PATTERN.sub(substitute, template.body)


def extract_variables(body: str) -> list[str]:
    """Names of all ``{{...}}`` tokens in order of appearance."""
    return [name.strip() for name in _ANY_TOKEN.findall(body)]


def validate_template(template: TemplateContent) -> bool:
    """Check body syntax and channel/format compatibility."""
    if not template.body:
        logger.error("Template body is required")
        return False

    opening = template.body.count("{{")
    closing = template.body.count("}}")
    if opening != closing:
        logger.error("Template has unbalanced braces", opening=opening, closing=closing)
        return False

    invalid = [name for name in _ANY_TOKEN.findall(template.body) if not _VARIABLE_NAME.match(name)]
    if invalid:
        logger.error("Template has invalid variable names", invalid_variables=invalid)
        return False

    allowed = CHANNEL_FORMATS.get(template.channel)
    if allowed is not None and template.format not in allowed:
        logger.error(
            "Template format not supported by channel",
            channel=template.channel.value,
            format=template.format.value,
        )
        return False

    return True


class TemplateService:
    """Template CRUD with validation on every write."""

    def __init__(self, store: TemplateStore):
        self._store = store

    async def get_template(
        self,
        event_type: str,
        channel: NotificationChannel,
    ) -> NotificationTemplate | None:
        """Get the template for an event type and channel.

        Returns:
            First matching template, or None
        """
        try:
            return await self._store.find_by_event_and_channel(event_type, channel.value)
        except Exception as e:
            logger.error("Error getting template", event_type=event_type, channel=channel.value, error=str(e))
            raise

    async def get_template_by_id(self, template_id: str) -> NotificationTemplate:
        """Raises:
            TemplateNotFoundError: If the template does not exist
        """
        template = await self._store.get(template_id)
        if not template:
            raise TemplateNotFoundError(template_id)
        return template

    def render_template(self, template: TemplateContent, context: Mapping[str, Any]) -> str:
        return render_template(template, context)

    def validate_template(self, template: TemplateContent) -> bool:
        return validate_template(template)

    async def create_template(self, content: TemplateContent) -> NotificationTemplate:
        """Validate and store a new template.

        Raises:
            TemplateValidationError: If the template is invalid
        """
        if not validate_template(content):
            raise TemplateValidationError("Invalid template syntax")

        now = datetime.now(timezone.utc)
        data = content.model_dump()
        if not data["variables"]:
            data["variables"] = list(dict.fromkeys(extract_variables(content.body)))

        template = NotificationTemplate(
            **data,
            template_id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
        )
        created = await self._store.create(template)
        logger.info(
            "Template created",
            template_id=created.template_id,
            event_type=created.event_type,
            channel=created.channel.value,
        )
        return created

    async def update_template(self, template_id: str, updates: Mapping[str, Any]) -> NotificationTemplate:
        """Apply ``updates`` to a stored template.

        The merged template is validated whenever body, channel or format
        change; nothing is written if validation fails.

        Raises:
            TemplateNotFoundError: If the template does not exist
            TemplateValidationError: If the updated template is invalid
        """
        existing = await self._store.get(template_id)
        if not existing:
            raise TemplateNotFoundError(template_id)

        changes = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS and v is not None}
        merged = existing.model_dump()
        merged.update(changes)
        merged["updated_at"] = datetime.now(timezone.utc)

        try:
            updated = NotificationTemplate.model_validate(merged)
        except ValidationError as e:
            raise TemplateValidationError(str(e)) from e

        if {"body", "channel", "format"} & changes.keys() and not validate_template(updated):
            raise TemplateValidationError("Invalid template syntax")

        result = await self._store.update(existing, updated)
        logger.info("Template updated", template_id=template_id, fields=sorted(changes))
        return result

    async def list_templates(
        self,
        event_type: str | None = None,
        channel: NotificationChannel | None = None,
    ) -> list[NotificationTemplate]:
        templates = await self._store.list_all()
        if event_type:
            templates = [t for t in templates if t.event_type == event_type]
        if channel:
            templates = [t for t in templates if t.channel == channel]
        return templates

    async def seed_default_templates(self) -> list[NotificationTemplate]:
        """Create default templates for every (event type, channel) pair not yet present."""
        created = []
        for content in DEFAULT_TEMPLATES:
            if await self.get_template(content.event_type, content.channel):
                continue
            created.append(await self.create_template(content))

        logger.info("Default templates seeded", created=len(created), total=len(DEFAULT_TEMPLATES))
        return created
