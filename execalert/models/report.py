"""Summary report domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ReportType(str, Enum):
    """Reporting cadence."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ReportPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class ExecutionStats(BaseModel):
    """Result distribution of the executions in a period. Rates are percentages."""

    total_executions: int = 0
    pass_rate: float = 0.0
    fail_rate: float = 0.0
    error_rate: float = 0.0
    average_duration: int = Field(default=0, description="Milliseconds")


class FailingTest(BaseModel):
    test_case_id: str
    test_name: str
    failure_count: int
    last_failure: datetime


class ReportTrends(BaseModel):
    """Change against the previous period of the same length."""

    execution_change: float = Field(default=0.0, description="Percent change in execution count")
    pass_rate_change: float = Field(default=0.0, description="Pass rate difference in points")


class SummaryReportData(BaseModel):
    """Body of a ``summary_report`` event."""

    report_type: ReportType
    period: ReportPeriod
    stats: ExecutionStats
    top_failing_tests: list[FailingTest] = Field(default_factory=list)
    trends: ReportTrends = Field(default_factory=ReportTrends)


class ReportResult(BaseModel):
    """Outcome of one report run."""

    success: bool
    report_type: ReportType
    period: ReportPeriod
    executions_processed: int = 0
    event_id: str | None = None
    error_message: str | None = None
