"""Test execution domain models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class ExecutionResult(str, Enum):
    """Outcome of a completed execution."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


FAILED_RESULTS = frozenset({ExecutionResult.FAIL, ExecutionResult.ERROR})
FINISHED_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.ERROR})


class ExecutionMetadata(BaseModel):
    """Who ran the execution and where."""

    triggered_by: str = Field(..., description="User ID that triggered the run")
    environment: str | None = Field(default=None, description="test, staging or production")


class TestExecution(BaseModel):
    """Execution record of a single test case run."""

    __test__ = False  # keep pytest from collecting this model

    execution_id: str = Field(..., description="Execution unique identifier")
    project_id: str = Field(..., description="Owning project")
    test_case_id: str | None = Field(default=None)
    test_suite_id: str | None = Field(default=None)
    suite_execution_id: str | None = Field(
        default=None,
        description="Links test case executions of one suite run",
    )
    status: ExecutionStatus = Field(..., description="Execution status")
    result: ExecutionResult | None = Field(default=None, description="Execution result")
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: datetime | None = None
    duration: int | None = Field(default=None, ge=0, description="Duration in milliseconds")
    screenshots: list[str] = Field(default_factory=list)
    error_message: str | None = None
    metadata: ExecutionMetadata
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def failed(self) -> bool:
        return self.result in FAILED_RESULTS
