"""Scheduled summary reports.

A report covers the last day, week or 30 days of finished executions,
compares them with the period before, and is published as a
``summary_report`` event so it goes through the normal notification path.
Run it from cron::

    execalert-report weekly
"""

import asyncio
import sys
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from execalert.core.config import Settings, get_settings
from execalert.core.logging import get_logger, setup_logging
from execalert.events.publisher import EventPublisher, RabbitMQEventBus
from execalert.models.event import EventPayload, EventType, NotificationEvent
from execalert.models.execution import FAILED_RESULTS, ExecutionResult, TestExecution
from execalert.models.report import (
    ExecutionStats,
    FailingTest,
    ReportPeriod,
    ReportResult,
    ReportTrends,
    ReportType,
    SummaryReportData,
)
from execalert.storage.execution_store import ExecutionStore
from execalert.storage.redis_client import close_redis_pool, get_redis, init_redis_pool

logger = get_logger(__name__)

REPORT_LENGTHS = {
    ReportType.DAILY: timedelta(days=1),
    ReportType.WEEKLY: timedelta(days=7),
    ReportType.MONTHLY: timedelta(days=30),
}

TOP_FAILING_LIMIT = 10


class ReportEventPublisher(Protocol):
    async def publish_event(self, detail: NotificationEvent) -> str | None: ...


def determine_report_type(name: str | None) -> ReportType:
    """Report type named in a schedule or rule name; daily when none matches."""
    name = (name or "").lower()
    for report_type in ReportType:
        if report_type.value in name:
            return report_type
    return ReportType.DAILY


def report_period(report_type: ReportType, now: datetime) -> ReportPeriod:
    return ReportPeriod(start_date=now - REPORT_LENGTHS[report_type], end_date=now)


def previous_period(report_type: ReportType, current_start: datetime) -> ReportPeriod:
    return ReportPeriod(start_date=current_start - REPORT_LENGTHS[report_type], end_date=current_start)


def calculate_statistics(executions: list[TestExecution]) -> ExecutionStats:
    if not executions:
        return ExecutionStats()

    total = len(executions)
    results = Counter(e.result for e in executions)
    total_duration = sum(e.duration or 0 for e in executions)

    return ExecutionStats(
        total_executions=total,
        pass_rate=round(results[ExecutionResult.PASS] / total * 100, 2),
        fail_rate=round(results[ExecutionResult.FAIL] / total * 100, 2),
        error_rate=round(results[ExecutionResult.ERROR] / total * 100, 2),
        average_duration=round(total_duration / total),
    )


def calculate_trends(current: ExecutionStats, previous: ExecutionStats) -> ReportTrends:
    """Changes are zero when the previous period has nothing to compare with."""
    execution_change = 0.0
    pass_rate_change = 0.0

    if previous.total_executions > 0:
        execution_change = (
            (current.total_executions - previous.total_executions) / previous.total_executions * 100
        )
    if previous.pass_rate > 0:
        pass_rate_change = current.pass_rate - previous.pass_rate

    return ReportTrends(
        execution_change=round(execution_change, 2),
        pass_rate_change=round(pass_rate_change, 2),
    )


def top_failing_tests(executions: list[TestExecution], limit: int = TOP_FAILING_LIMIT) -> list[FailingTest]:
    """Test cases with the most failed or errored executions, most failures first."""
    counts: dict[str, int] = {}
    last_failure: dict[str, datetime] = {}

    for execution in executions:
        if execution.result not in FAILED_RESULTS or not execution.test_case_id:
            continue
        test_case_id = execution.test_case_id
        failed_at = execution.end_time or execution.created_at
        counts[test_case_id] = counts.get(test_case_id, 0) + 1
        if test_case_id not in last_failure or failed_at > last_failure[test_case_id]:
            last_failure[test_case_id] = failed_at

    ranked = sorted(counts, key=lambda test_case_id: counts[test_case_id], reverse=True)
    return [
        FailingTest(
            test_case_id=test_case_id,
            test_name=test_case_id,
            failure_count=counts[test_case_id],
            last_failure=last_failure[test_case_id],
        )
        for test_case_id in ranked[:limit]
    ]


def build_report_event(report: SummaryReportData, recipient: str, now: datetime) -> NotificationEvent:
    return NotificationEvent(
        event_type=EventType.SUMMARY_REPORT,
        event_id=f"report-{int(now.timestamp() * 1000)}",
        timestamp=now,
        payload=EventPayload(
            project_id="all",
            triggered_by=recipient,
            report_data=report.model_dump(mode="json"),
        ),
    )


class SummaryReportGenerator:
    """Builds summary reports from stored executions and publishes them."""

    def __init__(
        self,
        store: ExecutionStore,
        publisher: ReportEventPublisher,
        recipient: str = "system",
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize generator.

        Args:
            store: Execution store
            publisher: Event publisher
            recipient: User ID whose preferences decide report delivery
            clock: Current time source
        """
        self._store = store
        self._publisher = publisher
        self._recipient = recipient
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def generate(self, report_type: ReportType) -> ReportResult:
        """Build and publish one report.

        Returns:
            Result; store and publish failures are reported, not raised
        """
        now = self._clock()
        period = report_period(report_type, now)
        before = previous_period(report_type, period.start_date)
        logger.info(
            "Generating summary report",
            report_type=report_type.value,
            start_date=period.start_date.isoformat(),
            end_date=period.end_date.isoformat(),
        )

        try:
            current = await self._store.query_finished_between(period.start_date, period.end_date)
            previous = await self._store.query_finished_between(before.start_date, before.end_date)
        except Exception as e:
            logger.error("Error querying executions for report", report_type=report_type.value, error=str(e))
            return ReportResult(
                success=False,
                report_type=report_type,
                period=period,
                error_message=str(e) or type(e).__name__,
            )

        stats = calculate_statistics(current)
        report = SummaryReportData(
            report_type=report_type,
            period=period,
            stats=stats,
            top_failing_tests=top_failing_tests(current),
            trends=calculate_trends(stats, calculate_statistics(previous)),
        )

        event_id = await self._publisher.publish_event(build_report_event(report, self._recipient, now))
        if event_id is None:
            return ReportResult(
                success=False,
                report_type=report_type,
                period=period,
                executions_processed=len(current),
                error_message="Failed to publish report event",
            )

        logger.info(
            "Summary report published",
            report_type=report_type.value,
            event_id=event_id,
            executions_processed=len(current),
        )
        return ReportResult(
            success=True,
            report_type=report_type,
            period=period,
            executions_processed=len(current),
            event_id=event_id,
        )


async def main(report_type: ReportType, settings: Settings | None = None) -> ReportResult:
    """Generate one report against the configured Redis and event exchange."""
    settings = settings or get_settings()
    setup_logging(settings)

    await init_redis_pool(settings.redis_url)
    bus = RabbitMQEventBus(settings)
    try:
        generator = SummaryReportGenerator(
            ExecutionStore(get_redis()),
            EventPublisher(bus, settings),
            recipient=settings.report_recipient,
        )
        return await generator.generate(report_type)
    finally:
        await bus.close()
        await close_redis_pool()


def run() -> None:
    """Console script entry point."""
    if len(sys.argv) > 1 and sys.argv[1] in ["-h", "--help"]:
        print("Usage:")
        print(f"  {sys.argv[0]} [daily|weekly|monthly]")
        return

    report_type = determine_report_type(sys.argv[1] if len(sys.argv) > 1 else None)
    result = asyncio.run(main(report_type))
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    run()
