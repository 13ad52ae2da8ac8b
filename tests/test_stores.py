"""Tests for the Redis-backed stores."""

from datetime import datetime, timezone

import pytest

from execalert.models.event import EventType
from execalert.models.execution import ExecutionResult
from execalert.models.notification import DeliveryStatus, HistoryMetadata
from execalert.models.preferences import FrequencyLimit, QuietHours
from execalert.models.template import NotificationChannel
from execalert.storage.execution_store import ExecutionStore
from execalert.storage.history_store import HistoryQuery, NotificationHistoryStore, decode_token, encode_token
from execalert.storage.preferences_store import PreferencesStore, in_quiet_hours
from execalert.storage.redis_client import RedisKeys

NINETY_DAYS = 90 * 24 * 3600


# Executions


@pytest.mark.asyncio
async def test_execution_round_trip(redis, make_execution) -> None:
    store = ExecutionStore(redis)
    execution = make_execution("exec-1", ExecutionResult.FAIL, error_message="boom")

    await store.save(execution)

    assert await store.get("exec-1") == execution
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_suite_query_pages_in_creation_order(redis, make_execution) -> None:
    store = ExecutionStore(redis, page_size=2)
    for index in (2, 0, 1):
        await store.save(make_execution(f"exec-{index}", suite_execution_id="run-1", offset_minutes=index))

    first = await store.query_by_suite_execution("run-1")
    assert [e.execution_id for e in first.items] == ["exec-0", "exec-1"]
    assert first.last_evaluated_key == "2"

    second = await store.query_by_suite_execution("run-1", first.last_evaluated_key)
    assert [e.execution_id for e in second.items] == ["exec-2"]
    assert second.last_evaluated_key is None


@pytest.mark.asyncio
async def test_resave_does_not_duplicate_index_entries(redis, make_execution) -> None:
    store = ExecutionStore(redis)
    execution = make_execution("exec-1", suite_execution_id="run-1")

    await store.save(execution)
    await store.save(execution.model_copy(update={"result": ExecutionResult.FAIL}))

    page = await store.query_by_suite_execution("run-1")
    assert len(page.items) == 1
    assert page.items[0].result == ExecutionResult.FAIL


@pytest.mark.asyncio
async def test_test_case_query_returns_newest_first(redis, make_execution) -> None:
    store = ExecutionStore(redis)
    for index in range(5):
        await store.save(make_execution(f"exec-{index}", offset_minutes=index))

    recent = await store.query_by_test_case("tc-1", limit=3)

    assert [e.execution_id for e in recent] == ["exec-4", "exec-3", "exec-2"]
    assert await store.query_by_test_case("tc-unknown", limit=3) == []


# History


async def record(store: NotificationHistoryStore, user_id: str = "user-1", event_type: str = "test_failure", **kwargs):
    values = {
        "user_id": user_id,
        "event_type": event_type,
        "event_id": "exec-1",
        "channel": NotificationChannel.EMAIL,
        "recipient": "dev@example.com",
        **kwargs,
    }
    return await store.record(**values)


@pytest.mark.asyncio
async def test_history_record_expires_after_retention(redis) -> None:
    store = NotificationHistoryStore(redis, ttl_days=90)

    stored = await record(store, metadata=HistoryMetadata(execution_id="exec-1"))

    ttl = await redis.ttl(RedisKeys.history_detail(stored.notification_id))
    assert 0 < ttl <= NINETY_DAYS
    assert stored.ttl - int(stored.sent_at.timestamp()) == NINETY_DAYS
    assert stored.delivery_status == DeliveryStatus.PENDING
    assert (await store.get(stored.notification_id)).metadata.execution_id == "exec-1"


@pytest.mark.asyncio
async def test_update_delivery_status_keeps_ttl(redis) -> None:
    store = NotificationHistoryStore(redis)
    stored = await record(store, delivery_status=DeliveryStatus.SENT)
    delivered_at = datetime(2026, 1, 10, 15, 0, tzinfo=timezone.utc)

    updated = await store.update_delivery_status(stored.notification_id, DeliveryStatus.DELIVERED, delivered_at)

    assert updated.delivery_status == DeliveryStatus.DELIVERED
    assert updated.delivered_at == delivered_at
    assert await redis.ttl(RedisKeys.history_detail(stored.notification_id)) > 0
    assert await store.update_delivery_status("missing", DeliveryStatus.DELIVERED) is None


@pytest.mark.asyncio
async def test_history_query_paginates(redis) -> None:
    store = NotificationHistoryStore(redis)
    ids = {(await record(store)).notification_id for _ in range(3)}

    first = await store.query(HistoryQuery(user_id="user-1", limit=2))
    assert len(first.records) == 2
    assert first.next_token is not None

    second = await store.query(HistoryQuery(user_id="user-1", limit=2, next_token=first.next_token))
    assert len(second.records) == 1
    assert second.next_token is None

    assert {r.notification_id for r in first.records + second.records} == ids


@pytest.mark.asyncio
async def test_history_query_filters(redis) -> None:
    store = NotificationHistoryStore(redis)
    failure = await record(store, delivery_status=DeliveryStatus.SENT)
    await record(store, event_type="critical_alert", channel=NotificationChannel.SMS, recipient="+15551234567")
    await record(store, user_id="user-2")

    by_event = await store.query(HistoryQuery(user_id="user-1", event_type="test_failure"))
    assert [r.notification_id for r in by_event.records] == [failure.notification_id]

    by_channel = await store.query(HistoryQuery(channel=NotificationChannel.SMS))
    assert [r.event_type for r in by_channel.records] == ["critical_alert"]

    by_status = await store.query(HistoryQuery(delivery_status=DeliveryStatus.SENT))
    assert [r.notification_id for r in by_status.records] == [failure.notification_id]

    by_type_only = await store.query(HistoryQuery(event_type="test_failure"))
    assert {r.user_id for r in by_type_only.records} == {"user-1", "user-2"}


@pytest.mark.asyncio
async def test_history_query_skips_expired_records(redis) -> None:
    store = NotificationHistoryStore(redis)
    expired = await record(store)
    kept = await record(store)
    await redis.delete(RedisKeys.history_detail(expired.notification_id))

    page = await store.query(HistoryQuery(user_id="user-1"))

    assert [r.notification_id for r in page.records] == [kept.notification_id]


@pytest.mark.asyncio
async def test_history_query_rejects_bad_token(redis) -> None:
    store = NotificationHistoryStore(redis)

    with pytest.raises(ValueError, match="Invalid pagination token"):
        await store.query(HistoryQuery(next_token="garbage"))


def test_token_encoding() -> None:
    assert decode_token(encode_token(40)) == 40
    assert decode_token(None) == 0


# Preferences


@pytest.mark.asyncio
async def test_unknown_user_gets_defaults(redis) -> None:
    store = PreferencesStore(redis)

    preferences = await store.get("user-1")

    assert preferences.user_id == "user-1"
    assert preferences.for_event(EventType.TEST_COMPLETION).enabled is False
    assert await store.delivery_channels("user-1", EventType.CRITICAL_ALERT) == [
        NotificationChannel.EMAIL,
        NotificationChannel.SMS,
    ]


@pytest.mark.asyncio
async def test_update_merges_over_defaults(redis) -> None:
    store = PreferencesStore(redis)

    await store.update("user-1", {"email": "dev@example.com"})
    updated = await store.update("user-1", {"phone_number": "+15551234567"})

    assert updated.email == "dev@example.com"
    assert updated.phone_number == "+15551234567"
    assert (await store.get("user-1")).phone_number == "+15551234567"


@pytest.mark.asyncio
async def test_frequency_limit_counts_per_hour(redis) -> None:
    store = PreferencesStore(redis)
    preferences = await store.update(
        "user-1",
        {"frequency_limit": FrequencyLimit(enabled=True, max_per_hour=2).model_dump()},
    )

    allowed = [await store.within_frequency_limit(preferences) for _ in range(3)]

    assert allowed == [True, True, False]


@pytest.mark.asyncio
async def test_disabled_frequency_limit_always_allows(redis) -> None:
    store = PreferencesStore(redis)
    preferences = await store.get("user-1")

    assert await store.within_frequency_limit(preferences)
    assert await redis.keys("execalert:notify:rate:*") == []


@pytest.mark.parametrize(
    "hour, minute, expected",
    [
        (23, 0, True),
        (3, 0, True),
        (7, 0, True),
        (7, 1, False),
        (12, 0, False),
        (22, 0, True),
    ],
)
def test_quiet_hours_span_midnight(hour: int, minute: int, expected: bool) -> None:
    quiet = QuietHours(enabled=True, start_time="22:00", end_time="07:00")
    now = datetime(2026, 1, 10, hour, minute, tzinfo=timezone.utc)

    assert in_quiet_hours(quiet, now) is expected


def test_quiet_hours_use_local_time() -> None:
    quiet = QuietHours(enabled=True, start_time="09:00", end_time="17:00", timezone="Asia/Tokyo")

    # 01:00 UTC is 10:00 in Tokyo
    assert in_quiet_hours(quiet, datetime(2026, 1, 10, 1, 0, tzinfo=timezone.utc))
    assert not in_quiet_hours(quiet, datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc))


def test_quiet_hours_disabled_or_unknown_timezone() -> None:
    now = datetime(2026, 1, 10, 23, 0, tzinfo=timezone.utc)

    assert not in_quiet_hours(None, now)
    assert not in_quiet_hours(QuietHours(enabled=False), now)
    assert not in_quiet_hours(QuietHours(enabled=True, timezone="Mars/Olympus_Mons"), now)
