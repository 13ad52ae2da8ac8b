"""Failure pattern detection over execution history."""

import random
import string
import time
from typing import Protocol

from execalert.core.logging import get_logger
from execalert.models.event import (
    AlertDetails,
    AlertType,
    CriticalAlert,
    EventPayload,
    EventType,
    NotificationEvent,
)
from execalert.models.execution import ExecutionResult, TestExecution
from execalert.observability.metrics import ALERTS_RAISED
from execalert.storage.execution_store import ExecutionPage

logger = get_logger(__name__)


class ExecutionQueries(Protocol):
    """Execution index queries the detector needs."""

    async def query_by_suite_execution(
        self,
        suite_execution_id: str,
        exclusive_start_key: str | None = None,
    ) -> ExecutionPage: ...

    async def query_by_test_case(self, test_case_id: str, limit: int) -> list[TestExecution]: ...


def generate_alert_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"alert-{int(time.time() * 1000)}-{suffix}"


class FailureDetector:
    """Decides whether recent executions warrant a critical alert.

    Storage errors are logged and re-raised.
    """

    def __init__(
        self,
        store: ExecutionQueries,
        failure_rate_threshold: float = 50.0,
        consecutive_failures: int = 3,
    ):
        """Initialize detector.

        Args:
            store: Execution index queries
            failure_rate_threshold: Percentage a suite must exceed
            consecutive_failures: Number of most recent runs that must all fail
        """
        self._store = store
        self._threshold = failure_rate_threshold
        self._streak = consecutive_failures

    async def detect_suite_failure_rate(self, suite_execution_id: str) -> CriticalAlert | None:
        """Alert when a suite run's failure rate exceeds the threshold.

        Args:
            suite_execution_id: Suite execution to check

        Returns:
            Alert if the failure rate is strictly above the threshold
        """
        try:
            executions = await self._query_suite(suite_execution_id)
        except Exception as e:
            logger.error("Suite execution query failed", suite_execution_id=suite_execution_id, error=str(e))
            raise

        if not executions:
            logger.info("No executions found for suite", suite_execution_id=suite_execution_id)
            return None

        failed = [e for e in executions if e.failed]
        failure_rate = len(failed) / len(executions) * 100

        logger.info(
            "Suite failure rate calculated",
            suite_execution_id=suite_execution_id,
            total=len(executions),
            failed=len(failed),
            failure_rate=failure_rate,
        )

        if failure_rate <= self._threshold:
            return None

        affected = list(dict.fromkeys(e.test_case_id for e in failed if e.test_case_id))
        last = executions[-1]

        ALERTS_RAISED.labels(alert_type=AlertType.SUITE_FAILURE_THRESHOLD.value).inc()
        return CriticalAlert(
            alert_type=AlertType.SUITE_FAILURE_THRESHOLD,
            test_suite_id=executions[0].test_suite_id,
            suite_execution_id=suite_execution_id,
            reason=(
                f"Test suite failure rate ({failure_rate:.1f}%) exceeds "
                f"{self._threshold:g}% threshold"
            ),
            details=AlertDetails(
                failure_rate=round(failure_rate, 2),
                affected_tests=affected,
                last_failure=last.end_time or last.created_at,
            ),
        )

    async def detect_consecutive_failures(
        self,
        test_case_id: str,
        limit: int | None = None,
    ) -> CriticalAlert | None:
        """Alert when the most recent runs of a test case all failed.

        Args:
            test_case_id: Test case to check
            limit: Number of recent executions to fetch

        Returns:
            Alert if the newest ``consecutive_failures`` runs are all fail/error,
            None otherwise or when there is not enough history
        """
        try:
            executions = await self._store.query_by_test_case(test_case_id, limit or self._streak)
        except Exception as e:
            logger.error("Test case execution query failed", test_case_id=test_case_id, error=str(e))
            raise

        if len(executions) < self._streak:
            logger.info(
                "Not enough executions to detect consecutive failures",
                test_case_id=test_case_id,
                execution_count=len(executions),
            )
            return None

        recent = executions[: self._streak]
        all_failed = all(e.failed for e in recent)

        logger.info(
            "Consecutive failure check",
            test_case_id=test_case_id,
            recent=[(e.execution_id, e.result.value if e.result else None) for e in recent],
            all_failed=all_failed,
        )

        if not all_failed:
            return None

        latest = recent[0]
        ALERTS_RAISED.labels(alert_type=AlertType.CONSECUTIVE_FAILURES.value).inc()
        return CriticalAlert(
            alert_type=AlertType.CONSECUTIVE_FAILURES,
            test_case_id=test_case_id,
            test_suite_id=latest.test_suite_id,
            reason=f"Test case has failed {self._streak} consecutive times",
            details=AlertDetails(
                consecutive_failures=self._streak,
                last_failure=latest.end_time or latest.created_at,
                error_message=latest.error_message,
            ),
        )

    def generate_critical_alert(
        self,
        alert: CriticalAlert,
        project_id: str,
        triggered_by: str,
    ) -> NotificationEvent:
        """Wrap an alert into a notification event. Performs no I/O."""
        event = NotificationEvent(
            event_type=EventType.CRITICAL_ALERT,
            event_id=generate_alert_id(),
            timestamp=alert.timestamp,
            payload=EventPayload(
                project_id=project_id,
                triggered_by=triggered_by,
                test_case_id=alert.test_case_id,
                test_suite_id=alert.test_suite_id,
                suite_execution_id=alert.suite_execution_id,
                status=ExecutionResult.ERROR.value,
                result=ExecutionResult.ERROR.value,
                error_message=alert.reason,
                alert_type=alert.alert_type,
                severity=alert.severity,
                details=alert.details,
            ),
        )

        logger.info(
            "Critical alert generated",
            event_id=event.event_id,
            alert_type=alert.alert_type.value,
            test_case_id=alert.test_case_id,
            test_suite_id=alert.test_suite_id,
        )
        return event

    async def _query_suite(self, suite_execution_id: str) -> list[TestExecution]:
        executions: list[TestExecution] = []
        last_key: str | None = None

        while True:
            page = await self._store.query_by_suite_execution(suite_execution_id, last_key)
            executions.extend(page.items)
            last_key = page.last_evaluated_key
            if not last_key:
                return executions
