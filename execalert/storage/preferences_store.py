"""User notification preference storage and checks."""

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from redis.asyncio import Redis

from execalert.core.logging import get_logger
from execalert.models.event import EventType
from execalert.models.preferences import NotificationPreferences, QuietHours
from execalert.models.template import NotificationChannel
from execalert.storage.redis_client import RedisKeys, get_redis

logger = get_logger(__name__)


def _minutes(clock: str) -> int:
    hour, minute = clock.split(":")
    return int(hour) * 60 + int(minute)


def in_quiet_hours(quiet_hours: QuietHours | None, now: datetime) -> bool:
    """Check whether ``now`` falls inside the quiet window, inclusive.

    Windows where start is after end span midnight.
    """
    if not quiet_hours or not quiet_hours.enabled:
        return False

    try:
        local = now.astimezone(ZoneInfo(quiet_hours.timezone))
    except ZoneInfoNotFoundError:
        logger.warning("Unknown quiet hours timezone", timezone=quiet_hours.timezone)
        return False

    current = local.hour * 60 + local.minute
    start = _minutes(quiet_hours.start_time)
    end = _minutes(quiet_hours.end_time)

    if start > end:
        return current >= start or current <= end
    return start <= current <= end


class PreferencesStore:
    """Preference storage using Redis."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def get(self, user_id: str) -> NotificationPreferences:
        """Get preferences, falling back to defaults for unknown users."""
        data = await self.redis.get(RedisKeys.preferences(user_id))
        if not data:
            return NotificationPreferences(user_id=user_id)
        return NotificationPreferences.model_validate_json(data)

    async def save(self, preferences: NotificationPreferences) -> NotificationPreferences:
        await self.redis.set(RedisKeys.preferences(preferences.user_id), preferences.model_dump_json())
        return preferences

    async def update(self, user_id: str, changes: dict[str, Any]) -> NotificationPreferences:
        """Merge ``changes`` over the stored (or default) preferences."""
        existing = await self.get(user_id)
        merged = existing.model_dump()
        merged.update(changes)
        merged["user_id"] = user_id
        merged["updated_at"] = datetime.now(timezone.utc)
        return await self.save(NotificationPreferences.model_validate(merged))

    async def delivery_channels(self, user_id: str, event_type: EventType) -> list[NotificationChannel]:
        preferences = await self.get(user_id)
        event_preference = preferences.for_event(event_type)
        if not event_preference:
            return []
        return list(event_preference.channels)

    async def within_frequency_limit(self, preferences: NotificationPreferences) -> bool:
        """Count one notification against the hourly limit.

        Returns:
            True if the notification is allowed
        """
        limit = preferences.frequency_limit
        if not limit or not limit.enabled:
            return True

        hour = datetime.now(timezone.utc).strftime("%Y%m%d%H")
        key = RedisKeys.notify_rate(preferences.user_id, hour)

        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, 7200)  # Expire after 2 hours

        return count <= limit.max_per_hour
