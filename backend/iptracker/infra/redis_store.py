# iptracker/infra/redis_store.py

import logging
import os
from contextlib import contextmanager
from typing import List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from iptracker.core.errors import StoreConnectionError, StoreError

logger = logging.getLogger(__name__)

# =========================
# CONFIGURATION
# =========================

REDIS_SOCKET = os.getenv("REDIS_SOCKET", "redis://localhost:6379/0")


@contextmanager
def _translate_errors(command: str):
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise StoreConnectionError(f"{command} failed: {e}") from e
    except RedisError as e:
        raise StoreError(f"{command} failed: {e}") from e


# =========================
# ATOMIC BATCH
# =========================

class AtomicBatch:
    """
    Ordered list of writes committed as one MULTI/EXEC block.
    Usage:
        batch = store.atomic().hset("app:1", "token", t).incr("user:id")
        await store.commit(batch)
    """

    def __init__(self):
        self._ops: List[Tuple[str, tuple]] = []

    def hset(self, key: str, field: str, value) -> "AtomicBatch":
        self._ops.append(("hset", (key, field, value)))
        return self

    def incr(self, key: str) -> "AtomicBatch":
        self._ops.append(("incr", (key,)))
        return self

    def sadd(self, key: str, member: str) -> "AtomicBatch":
        self._ops.append(("sadd", (key, member)))
        return self

    def __iter__(self):
        return iter(self._ops)

    def __len__(self):
        return len(self._ops)


# =========================
# STORE
# =========================

class RedisStore:
    """Thin async wrapper over a single Redis client."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: Optional[str] = None) -> "RedisStore":
        url = url or REDIS_SOCKET
        logger.debug("Redis socket: %s", url)
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def ping(self) -> None:
        with _translate_errors("PING"):
            await self._client.ping()

    async def exists(self, key: str) -> bool:
        with _translate_errors("EXISTS"):
            return bool(await self._client.exists(key))

    async def get(self, key: str) -> Optional[str]:
        with _translate_errors("GET"):
            return await self._client.get(key)

    async def set(self, key: str, value) -> None:
        with _translate_errors("SET"):
            await self._client.set(key, value)

    async def hget(self, key: str, field: str) -> Optional[str]:
        with _translate_errors("HGET"):
            return await self._client.hget(key, field)

    async def hset(self, key: str, field: str, value) -> None:
        with _translate_errors("HSET"):
            await self._client.hset(key, field, value)

    async def sadd(self, key: str, member: str) -> None:
        with _translate_errors("SADD"):
            await self._client.sadd(key, member)

    async def smembers(self, key: str) -> List[str]:
        """Set members, sorted so that the "first" member is stable."""
        with _translate_errors("SMEMBERS"):
            members = await self._client.smembers(key)
        # string order, so app:10000 sorts before app:9999
        return sorted(members)

    def atomic(self) -> AtomicBatch:
        return AtomicBatch()

    async def commit(self, batch: AtomicBatch) -> None:
        """Run every write in the batch inside one transaction, or none of them."""
        with _translate_errors("MULTI/EXEC"):
            async with self._client.pipeline(transaction=True) as pipe:
                for op, args in batch:
                    getattr(pipe, op)(*args)
                await pipe.execute()

    async def close(self) -> None:
        await self._client.aclose()
