"""Notification template storage operations."""

from redis.asyncio import Redis

from execalert.models.template import NotificationTemplate
from execalert.storage.redis_client import RedisKeys, get_redis


class TemplateStore:
    """Template storage using Redis with an (event type, channel) index."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def create(self, template: NotificationTemplate) -> NotificationTemplate:
        """Store a new template and index it.

        Args:
            template: Template to store

        Returns:
            Stored template
        """
        await self.redis.set(
            RedisKeys.template_detail(template.template_id),
            template.model_dump_json(),
        )
        await self.redis.sadd(RedisKeys.TEMPLATE_ALL, template.template_id)
        await self._index(template)
        return template

    async def get(self, template_id: str) -> NotificationTemplate | None:
        """Get a template by ID."""
        data = await self.redis.get(RedisKeys.template_detail(template_id))
        if not data:
            return None
        return NotificationTemplate.model_validate_json(data)

    async def find_by_event_and_channel(
        self,
        event_type: str,
        channel: str,
    ) -> NotificationTemplate | None:
        """Return the oldest template indexed under (event type, channel).

        Duplicates are a configuration error; the first match is returned.
        """
        ids = await self.redis.zrange(RedisKeys.template_index(event_type, channel), 0, 0)
        if not ids:
            return None
        return await self.get(ids[0])

    async def update(self, existing: NotificationTemplate, updated: NotificationTemplate) -> NotificationTemplate:
        """Overwrite a template, moving its index entry if the key changed."""
        if (existing.event_type, existing.channel) != (updated.event_type, updated.channel):
            await self.redis.zrem(
                RedisKeys.template_index(existing.event_type, existing.channel.value),
                existing.template_id,
            )
            await self._index(updated)

        await self.redis.set(
            RedisKeys.template_detail(updated.template_id),
            updated.model_dump_json(),
        )
        return updated

    async def list_all(self) -> list[NotificationTemplate]:
        """List all templates ordered by creation time."""
        ids = await self.redis.smembers(RedisKeys.TEMPLATE_ALL)
        templates = []
        for template_id in ids:
            template = await self.get(template_id)
            if template:
                templates.append(template)
        return sorted(templates, key=lambda t: t.created_at)

    async def _index(self, template: NotificationTemplate) -> None:
        await self.redis.zadd(
            RedisKeys.template_index(template.event_type, template.channel.value),
            {template.template_id: template.created_at.timestamp()},
        )
