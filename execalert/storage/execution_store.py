"""Test execution storage and query indexes."""

from dataclasses import dataclass, field
from datetime import datetime

from redis.asyncio import Redis

from execalert.models.execution import TestExecution
from execalert.storage.redis_client import RedisKeys, get_redis


@dataclass
class ExecutionPage:
    """One page of a paginated query.

    ``last_evaluated_key`` is None once the index is exhausted; otherwise it is
    passed back as ``exclusive_start_key`` to fetch the next page.
    """

    items: list[TestExecution] = field(default_factory=list)
    last_evaluated_key: str | None = None


class ExecutionStore:
    """Execution records with suite and test-case time indexes in Redis."""

    PAGE_SIZE = 100

    def __init__(self, redis: Redis | None = None, page_size: int | None = None):
        self._redis = redis
        self._page_size = page_size or self.PAGE_SIZE

    @property
    def redis(self) -> Redis:
        return self._redis or get_redis()

    async def save(self, execution: TestExecution) -> TestExecution:
        """Store an execution and add it to its indexes.

        Re-saving an execution overwrites it without duplicating index entries.
        """
        await self.redis.set(
            RedisKeys.execution_detail(execution.execution_id),
            execution.model_dump_json(),
        )

        if execution.suite_execution_id:
            await self.redis.zadd(
                RedisKeys.executions_by_suite(execution.suite_execution_id),
                {execution.execution_id: execution.created_at.timestamp()},
            )
        if execution.test_case_id:
            await self.redis.zadd(
                RedisKeys.executions_by_case(execution.test_case_id),
                {execution.execution_id: execution.start_time.timestamp()},
            )
        if execution.finished:
            await self.redis.zadd(
                RedisKeys.EXECUTIONS_FINISHED,
                {execution.execution_id: execution.created_at.timestamp()},
            )
        return execution

    async def get(self, execution_id: str) -> TestExecution | None:
        data = await self.redis.get(RedisKeys.execution_detail(execution_id))
        if not data:
            return None
        return TestExecution.model_validate_json(data)

    async def query_by_suite_execution(
        self,
        suite_execution_id: str,
        exclusive_start_key: str | None = None,
    ) -> ExecutionPage:
        """Fetch one page of a suite run's executions in creation order.

        Args:
            suite_execution_id: Suite execution ID
            exclusive_start_key: Key returned by the previous page

        Returns:
            Page of executions
        """
        start = int(exclusive_start_key) if exclusive_start_key else 0
        ids = await self.redis.zrange(
            RedisKeys.executions_by_suite(suite_execution_id),
            start,
            start + self._page_size - 1,
        )
        items = await self._load(ids)
        last_key = str(start + len(ids)) if len(ids) == self._page_size else None
        return ExecutionPage(items=items, last_evaluated_key=last_key)

    async def query_by_test_case(self, test_case_id: str, limit: int) -> list[TestExecution]:
        """Fetch the ``limit`` most recent executions of a test case, newest first."""
        ids = await self.redis.zrevrange(
            RedisKeys.executions_by_case(test_case_id),
            0,
            limit - 1,
        )
        return await self._load(ids)

    async def query_finished_between(self, start: datetime, end: datetime) -> list[TestExecution]:
        """Finished executions created within [start, end], oldest first.

        Reads the index a page at a time.
        """
        executions: list[TestExecution] = []
        offset = 0
        while True:
            ids = await self.redis.zrangebyscore(
                RedisKeys.EXECUTIONS_FINISHED,
                start.timestamp(),
                end.timestamp(),
                start=offset,
                num=self._page_size,
            )
            executions.extend(await self._load(ids))
            if len(ids) < self._page_size:
                return executions
            offset += len(ids)

    async def _load(self, ids: list[str]) -> list[TestExecution]:
        if not ids:
            return []
        raw = await self.redis.mget([RedisKeys.execution_detail(i) for i in ids])
        return [TestExecution.model_validate_json(data) for data in raw if data]
