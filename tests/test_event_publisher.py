"""Tests for completion event publishing."""

import json

import pytest

from execalert.core.config import Settings
from execalert.events.publisher import (
    EventEntry,
    EventPublisher,
    PutEventsResponse,
    PutEventsResultEntry,
    build_completion_event,
    determine_event_type,
)
from execalert.models.event import EventType
from execalert.models.execution import ExecutionResult, ExecutionStatus


class FakeEventBus:
    """Records entries and answers with a canned response."""

    def __init__(self, response: PutEventsResponse | None = None, error: Exception | None = None):
        self.entries: list[EventEntry] = []
        self._response = response
        self._error = error

    async def put_events(self, entries: list[EventEntry]) -> PutEventsResponse:
        self.entries.extend(entries)
        if self._error:
            raise self._error
        if self._response:
            return self._response
        return PutEventsResponse(entries=[PutEventsResultEntry(event_id=f"evt-{len(self.entries)}")])


@pytest.mark.parametrize(
    "status, result, expected",
    [
        (ExecutionStatus.ERROR, None, EventType.CRITICAL_ALERT),
        (ExecutionStatus.COMPLETED, ExecutionResult.ERROR, EventType.CRITICAL_ALERT),
        (ExecutionStatus.COMPLETED, ExecutionResult.FAIL, EventType.TEST_FAILURE),
        (ExecutionStatus.COMPLETED, ExecutionResult.PASS, EventType.TEST_COMPLETION),
    ],
)
def test_determine_event_type(make_execution, status, result, expected) -> None:
    execution = make_execution("exec-1", result, status=status)
    assert determine_event_type(execution) == expected


def test_completion_event_uses_execution_fields(make_execution) -> None:
    execution = make_execution(
        "exec-7",
        ExecutionResult.FAIL,
        suite_execution_id="run-1",
        error_message="assertion failed",
    )

    event = build_completion_event(execution)

    assert event.event_id == "exec-7"
    assert event.event_type == EventType.TEST_FAILURE
    assert event.payload.triggered_by == "user-1"
    assert event.payload.suite_execution_id == "run-1"
    assert event.payload.result == "fail"
    assert event.payload.duration == 30000
    assert event.payload.error_message == "assertion failed"


@pytest.mark.asyncio
async def test_publish_completion_event(settings: Settings, make_execution) -> None:
    bus = FakeEventBus()
    publisher = EventPublisher(bus, settings)

    event_id = await publisher.publish_test_completion_event(make_execution("exec-1", ExecutionResult.FAIL))

    assert event_id == "evt-1"
    [entry] = bus.entries
    assert entry.source == settings.event_source
    assert entry.detail_type == settings.event_detail_type
    detail = json.loads(entry.detail)
    assert detail["event_type"] == "test_failure"
    assert detail["event_id"] == "exec-1"
    assert detail["payload"]["project_id"] == "proj-1"


@pytest.mark.asyncio
async def test_publish_accepts_plain_mapping(settings: Settings) -> None:
    bus = FakeEventBus()
    publisher = EventPublisher(bus, settings)

    event_id = await publisher.publish_event({"event_type": "summary_report", "count": 3})

    assert event_id == "evt-1"
    assert json.loads(bus.entries[0].detail) == {"event_type": "summary_report", "count": 3}


@pytest.mark.asyncio
async def test_failed_entry_returns_none(settings: Settings, make_execution) -> None:
    bus = FakeEventBus(
        response=PutEventsResponse(
            failed_entry_count=1,
            entries=[PutEventsResultEntry(error_code="ChannelClosed", error_message="channel closed")],
        )
    )
    publisher = EventPublisher(bus, settings)

    assert await publisher.publish_test_completion_event(make_execution("exec-1")) is None
    assert len(bus.entries) == 1


@pytest.mark.asyncio
async def test_bus_error_is_swallowed(settings: Settings, make_execution) -> None:
    bus = FakeEventBus(error=ConnectionError("broker unreachable"))
    publisher = EventPublisher(bus, settings)

    assert await publisher.publish_test_completion_event(make_execution("exec-1")) is None
