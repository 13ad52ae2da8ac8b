"""Redis client management."""

import redis.asyncio as redis
from redis.asyncio import Redis

# Global connection pool
_pool: redis.ConnectionPool | None = None


async def init_redis_pool(redis_url: str) -> None:
    """Initialize Redis connection pool."""
    global _pool
    if _pool is None:
        _pool = redis.ConnectionPool.from_url(
            redis_url,
            decode_responses=True,
            max_connections=20,
        )


async def close_redis_pool() -> None:
    """Close Redis connection pool."""
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


def get_redis() -> Redis:
    """Get Redis client from pool.

    Returns:
        Redis client instance

    Raises:
        RuntimeError: If pool not initialized
    """
    if _pool is None:
        raise RuntimeError("Redis pool not initialized. Call init_redis_pool() first.")
    return redis.Redis(connection_pool=_pool)


# Key prefixes
class RedisKeys:
    """Redis key patterns."""

    # Executions
    EXECUTION_DETAIL = "execalert:executions:detail:{execution_id}"
    EXECUTIONS_BY_SUITE = "execalert:executions:suite:{suite_execution_id}"
    EXECUTIONS_BY_CASE = "execalert:executions:case:{test_case_id}"
    EXECUTIONS_FINISHED = "execalert:executions:finished"

    # Templates
    TEMPLATE_DETAIL = "execalert:templates:detail:{template_id}"
    TEMPLATE_INDEX = "execalert:templates:index:{event_type}:{channel}"
    TEMPLATE_ALL = "execalert:templates:all"

    # History
    HISTORY_DETAIL = "execalert:history:detail:{notification_id}"
    HISTORY_BY_USER = "execalert:history:user:{user_id}"
    HISTORY_BY_EVENT_TYPE = "execalert:history:event_type:{event_type}"
    HISTORY_ALL = "execalert:history:all"

    # Preferences
    PREFERENCES = "execalert:preferences:{user_id}"
    NOTIFY_RATE = "execalert:notify:rate:{user_id}:{hour}"

    @classmethod
    def execution_detail(cls, execution_id: str) -> str:
        return cls.EXECUTION_DETAIL.format(execution_id=execution_id)

    @classmethod
    def executions_by_suite(cls, suite_execution_id: str) -> str:
        return cls.EXECUTIONS_BY_SUITE.format(suite_execution_id=suite_execution_id)

    @classmethod
    def executions_by_case(cls, test_case_id: str) -> str:
        return cls.EXECUTIONS_BY_CASE.format(test_case_id=test_case_id)

    @classmethod
    def template_detail(cls, template_id: str) -> str:
        return cls.TEMPLATE_DETAIL.format(template_id=template_id)

    @classmethod
    def template_index(cls, event_type: str, channel: str) -> str:
        return cls.TEMPLATE_INDEX.format(event_type=event_type, channel=channel)

    @classmethod
    def history_detail(cls, notification_id: str) -> str:
        return cls.HISTORY_DETAIL.format(notification_id=notification_id)

    @classmethod
    def history_by_user(cls, user_id: str) -> str:
        return cls.HISTORY_BY_USER.format(user_id=user_id)

    @classmethod
    def history_by_event_type(cls, event_type: str) -> str:
        return cls.HISTORY_BY_EVENT_TYPE.format(event_type=event_type)

    @classmethod
    def preferences(cls, user_id: str) -> str:
        return cls.PREFERENCES.format(user_id=user_id)

    @classmethod
    def notify_rate(cls, user_id: str, hour: str) -> str:
        return cls.NOTIFY_RATE.format(user_id=user_id, hour=hour)
