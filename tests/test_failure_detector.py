"""Tests for failure pattern detection."""

import re

import pytest

from execalert.detection.failure_detector import FailureDetector
from execalert.models.event import AlertType, EventType
from execalert.models.execution import ExecutionResult, TestExecution
from execalert.storage.execution_store import ExecutionPage

FAIL = ExecutionResult.FAIL
PASS = ExecutionResult.PASS
ERROR = ExecutionResult.ERROR


class FakeExecutionStore:
    """In-memory execution queries with small pages to exercise pagination."""

    def __init__(
        self,
        suite: list[TestExecution] | None = None,
        case: list[TestExecution] | None = None,
        page_size: int = 2,
    ):
        self.suite = suite or []
        self.case = case or []
        self.page_size = page_size
        self.suite_calls: list[str | None] = []
        self.case_limits: list[int] = []

    async def query_by_suite_execution(
        self,
        suite_execution_id: str,
        exclusive_start_key: str | None = None,
    ) -> ExecutionPage:
        self.suite_calls.append(exclusive_start_key)
        start = int(exclusive_start_key or 0)
        items = self.suite[start:start + self.page_size]
        end = start + len(items)
        return ExecutionPage(items=items, last_evaluated_key=str(end) if end < len(self.suite) else None)

    async def query_by_test_case(self, test_case_id: str, limit: int) -> list[TestExecution]:
        self.case_limits.append(limit)
        return self.case[:limit]


class BrokenStore:
    async def query_by_suite_execution(self, suite_execution_id: str, exclusive_start_key: str | None = None):
        raise RuntimeError("index unavailable")

    async def query_by_test_case(self, test_case_id: str, limit: int):
        raise RuntimeError("index unavailable")


def suite_run(make_execution, results: list[tuple[str, ExecutionResult]]) -> list[TestExecution]:
    return [
        make_execution(
            f"exec-{i}",
            result,
            test_case_id=case_id,
            suite_execution_id="suite-run-1",
            offset_minutes=i,
            error_message="assertion failed" if result != PASS else None,
        )
        for i, (case_id, result) in enumerate(results)
    ]


@pytest.mark.asyncio
async def test_suite_failure_rate_alert_over_all_pages(make_execution) -> None:
    executions = suite_run(
        make_execution,
        [("tc-1", FAIL), ("tc-2", FAIL), ("tc-3", ERROR), ("tc-4", PASS)],
    )
    store = FakeExecutionStore(suite=executions)

    alert = await FailureDetector(store).detect_suite_failure_rate("suite-run-1")

    assert alert is not None
    assert store.suite_calls == [None, "2"]
    assert alert.alert_type == AlertType.SUITE_FAILURE_THRESHOLD
    assert alert.severity == "critical"
    assert alert.suite_execution_id == "suite-run-1"
    assert alert.details.failure_rate == 75.0
    assert alert.details.affected_tests == ["tc-1", "tc-2", "tc-3"]
    assert alert.details.last_failure == executions[-1].end_time


@pytest.mark.asyncio
async def test_suite_failure_rate_at_threshold_does_not_alert(make_execution) -> None:
    executions = suite_run(
        make_execution,
        [("tc-1", FAIL), ("tc-2", PASS), ("tc-3", FAIL), ("tc-4", PASS)],
    )

    assert await FailureDetector(FakeExecutionStore(suite=executions)).detect_suite_failure_rate("suite-run-1") is None


@pytest.mark.asyncio
async def test_suite_failure_rate_just_over_threshold_alerts(make_execution) -> None:
    executions = suite_run(
        make_execution,
        [("tc-1", FAIL), ("tc-2", PASS), ("tc-3", FAIL), ("tc-4", PASS)],
    )
    detector = FailureDetector(FakeExecutionStore(suite=executions), failure_rate_threshold=49.99)

    alert = await detector.detect_suite_failure_rate("suite-run-1")

    assert alert is not None
    assert alert.details.failure_rate == 50.0


@pytest.mark.asyncio
async def test_suite_failure_rate_rounds_and_deduplicates(make_execution) -> None:
    executions = suite_run(
        make_execution,
        [("tc-1", FAIL), ("tc-1", FAIL), ("tc-2", PASS)],
    )

    alert = await FailureDetector(FakeExecutionStore(suite=executions)).detect_suite_failure_rate("suite-run-1")

    assert alert is not None
    assert alert.details.failure_rate == 66.67
    assert alert.details.affected_tests == ["tc-1"]


@pytest.mark.asyncio
async def test_suite_without_executions_returns_none() -> None:
    assert await FailureDetector(FakeExecutionStore()).detect_suite_failure_rate("empty") is None


@pytest.mark.asyncio
async def test_consecutive_failures_needs_enough_history(make_execution) -> None:
    store = FakeExecutionStore(case=[make_execution("e2", FAIL), make_execution("e1", FAIL)])

    assert await FailureDetector(store).detect_consecutive_failures("tc-1") is None
    assert store.case_limits == [3]


@pytest.mark.asyncio
async def test_consecutive_failures_alerts_on_three_failures(make_execution) -> None:
    store = FakeExecutionStore(
        case=[
            make_execution("e3", ERROR, error_message="browser crashed"),
            make_execution("e2", FAIL, error_message="element not found"),
            make_execution("e1", FAIL, error_message="element not found"),
        ]
    )

    alert = await FailureDetector(store).detect_consecutive_failures("tc-1")

    assert alert is not None
    assert alert.alert_type == AlertType.CONSECUTIVE_FAILURES
    assert alert.test_case_id == "tc-1"
    assert alert.details.consecutive_failures == 3
    assert alert.details.error_message == "browser crashed"


@pytest.mark.asyncio
async def test_consecutive_failures_only_checks_most_recent_runs(make_execution) -> None:
    newest_failing = FakeExecutionStore(
        case=[
            make_execution("e4", FAIL),
            make_execution("e3", FAIL),
            make_execution("e2", FAIL),
            make_execution("e1", PASS),
        ]
    )
    recent_pass = FakeExecutionStore(
        case=[
            make_execution("e3", PASS),
            make_execution("e2", FAIL),
            make_execution("e1", FAIL),
        ]
    )

    assert await FailureDetector(newest_failing).detect_consecutive_failures("tc-1", limit=4) is not None
    assert await FailureDetector(recent_pass).detect_consecutive_failures("tc-1") is None


@pytest.mark.asyncio
async def test_query_errors_propagate() -> None:
    detector = FailureDetector(BrokenStore())

    with pytest.raises(RuntimeError, match="index unavailable"):
        await detector.detect_suite_failure_rate("suite-run-1")
    with pytest.raises(RuntimeError, match="index unavailable"):
        await detector.detect_consecutive_failures("tc-1")


@pytest.mark.asyncio
async def test_generate_critical_alert_wraps_alert(make_execution) -> None:
    store = FakeExecutionStore(case=[make_execution(f"e{i}", FAIL, error_message="timeout") for i in range(3)])
    detector = FailureDetector(store)
    alert = await detector.detect_consecutive_failures("tc-1")

    event = detector.generate_critical_alert(alert, project_id="proj-9", triggered_by="user-7")

    assert event.event_type == EventType.CRITICAL_ALERT
    assert event.is_critical
    assert re.fullmatch(r"alert-\d+-[a-z0-9]{6}", event.event_id)
    assert event.timestamp == alert.timestamp
    assert event.payload.project_id == "proj-9"
    assert event.payload.triggered_by == "user-7"
    assert event.payload.severity == "critical"
    assert event.payload.alert_type == AlertType.CONSECUTIVE_FAILURES
    assert event.payload.details.consecutive_failures == 3
