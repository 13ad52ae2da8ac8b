"""Notification history storage.

Records are append-only and expire after the retention period. Index entries
older than the retention window are pruned on write; entries whose record has
already expired are skipped on read.
"""

import base64
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from redis.asyncio import Redis

from execalert.models.notification import (
    DeliveryMethod,
    DeliveryStatus,
    HistoryMetadata,
    HistoryPage,
    NotificationHistoryRecord,
)
from execalert.models.template import NotificationChannel
from execalert.storage.redis_client import RedisKeys, get_redis


@dataclass
class HistoryQuery:
    """History query filters."""

    user_id: str | None = None
    event_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    channel: NotificationChannel | None = None
    delivery_status: DeliveryStatus | None = None
    limit: int = 50
    next_token: str | None = None


def encode_token(offset: int) -> str:
    return base64.urlsafe_b64encode(json.dumps({"offset": offset}).encode()).decode()


def decode_token(token: str | None) -> int:
    if not token:
        return 0
    try:
        return int(json.loads(base64.urlsafe_b64decode(token.encode()))["offset"])
    except (ValueError, KeyError, TypeError) as e:
        raise ValueError("Invalid pagination token") from e


class NotificationHistoryStore:
    """Notification history in Redis, indexed by user and event type."""

    def __init__(self, redis: Redis | None = None, ttl_days: int = 90):
        self._redis = redis
        self._ttl = timedelta(days=ttl_days)

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def record(
        self,
        *,
        user_id: str,
        event_type: str,
        event_id: str,
        channel: NotificationChannel,
        recipient: str,
        delivery_method: DeliveryMethod = DeliveryMethod.CHANNEL,
        delivery_status: DeliveryStatus = DeliveryStatus.PENDING,
        message_id: str | None = None,
        error_message: str | None = None,
        retry_count: int = 0,
        metadata: HistoryMetadata | None = None,
    ) -> NotificationHistoryRecord:
        """Append a notification attempt.

        Returns:
            Stored record with its generated ID, send time and TTL
        """
        now = datetime.now(timezone.utc)
        record = NotificationHistoryRecord(
            notification_id=str(uuid.uuid4()),
            user_id=user_id,
            event_type=event_type,
            event_id=event_id,
            channel=channel,
            delivery_method=delivery_method,
            delivery_status=delivery_status,
            recipient=recipient,
            message_id=message_id,
            error_message=error_message,
            retry_count=retry_count,
            sent_at=now,
            metadata=metadata or HistoryMetadata(),
            ttl=int((now + self._ttl).timestamp()),
        )

        await self.redis.set(
            RedisKeys.history_detail(record.notification_id),
            record.model_dump_json(),
            ex=int(self._ttl.total_seconds()),
        )

        score = now.timestamp()
        cutoff = (now - self._ttl).timestamp()
        for index_key in (
            RedisKeys.history_by_user(user_id),
            RedisKeys.history_by_event_type(event_type),
            RedisKeys.HISTORY_ALL,
        ):
            await self.redis.zadd(index_key, {record.notification_id: score})
            await self.redis.zremrangebyscore(index_key, "-inf", cutoff)

        return record

    async def get(self, notification_id: str) -> NotificationHistoryRecord | None:
        data = await self.redis.get(RedisKeys.history_detail(notification_id))
        if not data:
            return None
        return NotificationHistoryRecord.model_validate_json(data)

    async def update_delivery_status(
        self,
        notification_id: str,
        status: DeliveryStatus,
        delivered_at: datetime | None = None,
    ) -> NotificationHistoryRecord | None:
        """Update status of an existing record, keeping its remaining TTL."""
        record = await self.get(notification_id)
        if not record:
            return None

        record.delivery_status = status
        if delivered_at:
            record.delivered_at = delivered_at

        await self.redis.set(
            RedisKeys.history_detail(notification_id),
            record.model_dump_json(),
            keepttl=True,
        )
        return record

    async def query(self, query: HistoryQuery) -> HistoryPage:
        """Query history newest first.

        The user index is preferred, then the event type index, then all records.
        Channel and status filters apply after the page is read, so a page may
        hold fewer than ``limit`` records while ``next_token`` is still set.

        Raises:
            ValueError: If ``next_token`` is malformed
        """
        if query.user_id:
            index_key = RedisKeys.history_by_user(query.user_id)
        elif query.event_type:
            index_key = RedisKeys.history_by_event_type(query.event_type)
        else:
            index_key = RedisKeys.HISTORY_ALL

        offset = decode_token(query.next_token)
        ids = await self.redis.zrevrangebyscore(
            index_key,
            max=query.end_date.timestamp() if query.end_date else "+inf",
            min=query.start_date.timestamp() if query.start_date else "-inf",
            start=offset,
            num=query.limit,
        )

        records = []
        for notification_id in ids:
            record = await self.get(notification_id)
            if record is None:
                continue
            if query.user_id and query.event_type and record.event_type != query.event_type:
                continue
            if query.channel and record.channel != query.channel:
                continue
            if query.delivery_status and record.delivery_status != query.delivery_status:
                continue
            records.append(record)

        next_token = encode_token(offset + len(ids)) if len(ids) == query.limit else None
        return HistoryPage(records=records, next_token=next_token)
