"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable

import pytest
import pytest_asyncio
from fakeredis import aioredis

from execalert.core.config import Settings
from execalert.models.execution import (
    ExecutionMetadata,
    ExecutionResult,
    ExecutionStatus,
    TestExecution,
)

BASE_TIME = datetime(2026, 1, 10, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        smtp_host="smtp.test.local",
        smtp_from="alerts@execalert.test",
        sms_gateway_url="https://sms.test.local/send",
        sms_gateway_api_key="sms-key",
        admin_email="admin@example.com",
        retry_initial_delay_ms=1,
        retry_max_delay_ms=4,
    )


@pytest_asyncio.fixture
async def redis() -> AsyncIterator[aioredis.FakeRedis]:
    """In-memory Redis with string responses like the real pool."""
    client = aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def record_sleep(sleeps: list[float]) -> Callable:
    """Sleep replacement that records requested delays instead of waiting."""

    async def _sleep(delay_ms: float) -> None:
        sleeps.append(delay_ms)

    return _sleep


def build_execution(
    execution_id: str,
    result: ExecutionResult | None = ExecutionResult.PASS,
    *,
    status: ExecutionStatus = ExecutionStatus.COMPLETED,
    test_case_id: str | None = "tc-1",
    suite_execution_id: str | None = None,
    offset_minutes: int = 0,
    error_message: str | None = None,
    project_id: str = "proj-1",
    triggered_by: str = "user-1",
) -> TestExecution:
    """Build an execution; ``offset_minutes`` orders executions in time."""
    start = BASE_TIME + timedelta(minutes=offset_minutes)
    return TestExecution(
        execution_id=execution_id,
        project_id=project_id,
        test_case_id=test_case_id,
        test_suite_id="suite-1" if suite_execution_id else None,
        suite_execution_id=suite_execution_id,
        status=status,
        result=result,
        start_time=start,
        end_time=start + timedelta(seconds=30),
        duration=30000,
        error_message=error_message,
        metadata=ExecutionMetadata(triggered_by=triggered_by),
        created_at=start,
        updated_at=start,
    )


@pytest.fixture
def make_execution() -> Callable[..., TestExecution]:
    return build_execution
