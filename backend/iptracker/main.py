# iptracker/main.py

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager, suppress
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from iptracker.api import reports, telegram
from iptracker.clients.telegram_client import (
    TELEGRAM_TOKEN,
    TELEGRAM_WEBHOOK_URL,
    TelegramApiError,
    TelegramBotClient,
)
from iptracker.core.chat import ChatDispatcher
from iptracker.core.commands import CommandBus
from iptracker.core.rate_limit import limiter
from iptracker.core.worker import APP_ID_SEED, CommandWorker
from iptracker.infra.redis_store import RedisStore
from iptracker.utils.logger import setup_logger

logger = logging.getLogger(__name__)

HOST = os.getenv("IPTRACKER_HOST", "127.0.0.1")
PORT = int(os.getenv("IPTRACKER_PORT", "1234"))


def _exit_on_worker_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    logger.critical("Command worker stopped: %r", exc)
    os.kill(os.getpid(), signal.SIGTERM)


async def _register_webhook() -> None:
    client = TelegramBotClient(TELEGRAM_TOKEN)
    try:
        await run_in_threadpool(client.set_webhook, TELEGRAM_WEBHOOK_URL, telegram.TELEGRAM_WEBHOOK_SECRET)
    except TelegramApiError as e:
        logger.error("Failed to register Telegram webhook: %s", e)


def create_app(
    store_factory: Callable[[], RedisStore] = RedisStore.from_url,
    counter_seed: Optional[int] = APP_ID_SEED,
    on_worker_exit: Callable[[asyncio.Task], None] = _exit_on_worker_failure,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Store failures here abort startup
        store = store_factory()
        await store.ping()

        bus = CommandBus()
        worker = CommandWorker(store, bus, counter_seed=counter_seed)
        await worker.initialize()

        app.state.command_bus = bus
        app.state.worker = worker
        app.state.chat_dispatcher = ChatDispatcher(bus)

        task = asyncio.create_task(worker.serve_forever(), name="command-worker")
        task.add_done_callback(on_worker_exit)

        if TELEGRAM_TOKEN and TELEGRAM_WEBHOOK_URL:
            await _register_webhook()

        try:
            yield
        finally:
            task.cancel()
            # a worker that already died was logged by its done-callback
            with suppress(asyncio.CancelledError, Exception):
                await task
            await store.close()

    app = FastAPI(
        title="VPN IP Tracker",
        version="1.0.0",
        description="Tracks the last reported VPN address of registered hosts",
        lifespan=lifespan,
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Register routers
    app.include_router(reports.router, tags=["Reports"])
    app.include_router(telegram.router, tags=["Telegram"])

    @app.get("/health")
    def health_check(request: Request):
        worker = getattr(request.app.state, "worker", None)
        if worker is None:
            return {"status": "starting"}
        return {
            "status": "ok" if worker.running else "degraded",
            "worker": {"running": worker.running, **worker.stats.to_dict()},
        }

    return app


setup_logger()

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)
