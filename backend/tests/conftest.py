"""Pytest configuration and fixtures."""

import asyncio
from contextlib import suppress

import fakeredis
import pytest

from iptracker.core.commands import CommandBus
from iptracker.core.rate_limit import limiter
from iptracker.core.worker import CommandWorker
from iptracker.infra.redis_store import RedisStore


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    """One in-memory Redis server shared by every client a test creates."""
    return fakeredis.FakeServer()


@pytest.fixture
def make_store(fake_server):
    """Build a store on the shared fake server; call it inside the running loop."""

    def _make() -> RedisStore:
        return RedisStore(fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True))

    return _make


@pytest.fixture
def run_with_worker(make_store):
    """
    Run ``body(bus, worker, store)`` with a serving worker seeded at 1000.
    Usage:
        run_with_worker(body)
    """

    def _run(body, seed: int = 1000, store_factory=None):
        async def main():
            store = (store_factory or make_store)()
            bus = CommandBus()
            worker = CommandWorker(store, bus, counter_seed=seed)
            await worker.initialize()
            task = asyncio.create_task(worker.serve_forever())
            try:
                return await body(bus, worker, store)
            finally:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
                await store.close()

        return asyncio.run(main())

    return _run


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()
