"""Tests for worker wiring and lazily created resources."""

import asyncio

import pytest
from fakeredis import aioredis

import execalert.worker as worker_module
from execalert.core.cache import LazyCell
from execalert.core.config import Settings
from execalert.worker import WorkerManager


def test_worker_builds_execution_and_notification_consumers(monkeypatch, settings: Settings) -> None:
    monkeypatch.setattr(worker_module, "get_redis", lambda: aioredis.FakeRedis(decode_responses=True))
    manager = WorkerManager(settings)

    manager.build()

    consumers = manager._consumers
    assert [c._queue_name for c in consumers] == [settings.execution_queue, settings.notification_queue]
    assert consumers[0]._exchange is None
    assert consumers[1]._exchange == settings.event_exchange


@pytest.mark.asyncio
async def test_lazy_cell_creates_once_and_resets() -> None:
    created: list[object] = []

    async def factory() -> object:
        value = object()
        created.append(value)
        return value

    cell: LazyCell[object] = LazyCell(factory)
    assert not cell.is_set
    assert cell.peek() is None

    first = await cell.get()
    assert await cell.get() is first
    assert created == [first]

    assert cell.reset() is first
    assert not cell.is_set
    assert await cell.get() is not first
    assert len(created) == 2


@pytest.mark.asyncio
async def test_lazy_cell_disposes_value_that_lost_first_use_race() -> None:
    release = asyncio.Event()
    disposed: list[object] = []

    async def factory() -> object:
        await release.wait()
        return object()

    async def dispose(value: object) -> None:
        disposed.append(value)

    cell: LazyCell[object] = LazyCell(factory, dispose=dispose)

    first = asyncio.create_task(cell.get())
    second = asyncio.create_task(cell.get())
    await asyncio.sleep(0)
    release.set()
    values = await asyncio.gather(first, second)

    assert values[0] is values[1] is cell.peek()
    assert len(disposed) == 1
    assert disposed[0] is not cell.peek()
