# iptracker/core/worker.py

import asyncio
import logging
import os
import random
from dataclasses import asdict, dataclass
from typing import Optional

from iptracker.core.commands import (
    Command,
    CommandBus,
    Envelope,
    IssueCredential,
    QueryAddress,
    ReportAddress,
)
from iptracker.core.credentials import generate_token, parse_credential, tokens_match
from iptracker.core.errors import (
    CommandError,
    CorruptRecordError,
    CredentialMismatchError,
    StoreConnectionError,
    StoreError,
    UnknownApplicationError,
    WorkerUnavailableError,
)
from iptracker.infra.redis_store import RedisStore
from iptracker.models.application import (
    APP_ADDRESS_FIELD,
    APP_ID_COUNTER_KEY,
    APP_OWNER_FIELD,
    APP_TOKEN_FIELD,
    app_key,
    parse_app_key,
    user_key,
)

logger = logging.getLogger(__name__)

_seed_env = os.getenv("APP_ID_SEED")
APP_ID_SEED: Optional[int] = int(_seed_env) if _seed_env else None
APP_ID_SEED_RANGE = (1000, 10000)

REPORT_OK = "ok"
NO_APPLICATION_MESSAGE = "No application registered, so no reports available"
NO_ADDRESS_MESSAGE = "No reported IP addresses for you"


def address_message(address: str) -> str:
    return f"Your reported IP is `{address}`"


@dataclass
class WorkerStats:
    processed: int = 0
    failed: int = 0
    persistence_failures: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class CommandWorker:
    """
    The only component that talks to the store.

    Commands are taken off the bus one at a time and each one runs to
    completion, store round trips included, before the next is received.
    That ordering is what keeps the read-modify-write sequences below
    consistent without locks in Redis.
    """

    def __init__(self, store: RedisStore, bus: CommandBus, counter_seed: Optional[int] = APP_ID_SEED):
        self._store = store
        self._bus = bus
        self._counter_seed = counter_seed
        self.stats = WorkerStats()
        self.running = False

    # =========================
    # LIFECYCLE
    # =========================

    async def initialize(self) -> None:
        """Seed the application id counter if absent. Errors here are fatal."""
        if await self._store.exists(APP_ID_COUNTER_KEY):
            logger.debug("%s key exists", APP_ID_COUNTER_KEY)
            return

        seed = self._counter_seed
        if seed is None:
            seed = random.randrange(*APP_ID_SEED_RANGE)
        await self._store.set(APP_ID_COUNTER_KEY, seed)
        logger.info("Seeded %s with %d", APP_ID_COUNTER_KEY, seed)

    async def serve_forever(self) -> None:
        self.running = True
        try:
            while True:
                envelope = await self._bus.receive()
                await self._process(envelope)
        finally:
            self.running = False
            self._bus.close()

    async def run(self) -> None:
        await self.initialize()
        await self.serve_forever()

    async def _process(self, envelope: Envelope) -> None:
        logger.debug("Receive command: %r", envelope.command)
        self.stats.processed += 1
        try:
            result = await self.execute(envelope.command)
        except asyncio.CancelledError:
            self._fail(envelope, WorkerUnavailableError("Command worker stopped"))
            raise
        except StoreConnectionError as e:
            # Lost the store: this request fails and so does the worker.
            logger.error("Store connection lost: %s", e)
            self._fail(envelope, e)
            raise
        except CommandError as e:
            logger.warning("%s failed: %s", type(envelope.command).__name__, e)
            self._fail(envelope, e)
        except Exception:
            logger.exception("Unexpected error while handling %r", envelope.command)
            self._fail(envelope, CommandError("Internal error"))
        else:
            if envelope.reply.done():
                logger.debug("Caller went away, discarding reply")
            else:
                envelope.reply.set_result(result)

    def _fail(self, envelope: Envelope, error: Exception) -> None:
        self.stats.failed += 1
        if envelope.reply.done():
            logger.debug("Caller went away, discarding error reply")
        else:
            envelope.reply.set_exception(error)

    # =========================
    # PROTOCOL HANDLERS
    # =========================

    async def execute(self, command: Command) -> str:
        if isinstance(command, IssueCredential):
            return await self.issue_credential(command.user_id)
        if isinstance(command, ReportAddress):
            return await self.report_address(command)
        if isinstance(command, QueryAddress):
            return await self.query_address(command.user_id)
        raise CommandError(f"Unsupported command: {command!r}")

    async def issue_credential(self, user_id: int) -> str:
        """Return the user's credential, minting and registering one if needed."""
        ukey = user_key(user_id)
        members = await self._store.smembers(ukey)

        if members:
            akey = members[0]
            logger.debug("Found application registered: %s", akey)
            app_id = parse_app_key(akey)
            token = await self._store.hget(akey, APP_TOKEN_FIELD)
            if token is not None:
                logger.debug("Found existing token for the application %d", app_id)
                return token
        else:
            raw_id = await self._store.get(APP_ID_COUNTER_KEY)
            try:
                app_id = int(raw_id)
            except (TypeError, ValueError):
                raise CorruptRecordError(f"Invalid {APP_ID_COUNTER_KEY} value: {raw_id!r}") from None
            akey = app_key(app_id)
            logger.debug("Register new application: %d", app_id)

        logger.debug("Generate a token for the application %d", app_id)
        token = generate_token(app_id, user_id)
        batch = (
            self._store.atomic()
            .hset(akey, APP_TOKEN_FIELD, token)
            .hset(akey, APP_OWNER_FIELD, user_id)
            .incr(APP_ID_COUNTER_KEY)
            .sadd(ukey, akey)
        )
        try:
            await self._store.commit(batch)
        except StoreError as e:
            # Best effort: the token goes back to the caller even if unrecorded.
            self.stats.persistence_failures += 1
            logger.error("Failed to register application %d for user %d: %s", app_id, user_id, e)

        return token

    async def report_address(self, command: ReportAddress) -> str:
        credential = parse_credential(command.credential)
        akey = app_key(credential.app_id)

        if not await self._store.exists(akey):
            raise UnknownApplicationError(f"Application {credential.app_id} does not exist")

        stored = await self._store.hget(akey, APP_TOKEN_FIELD)
        if stored is None or not tokens_match(stored, credential.token):
            raise CredentialMismatchError("Credential mismatch")

        await self._store.hset(akey, APP_ADDRESS_FIELD, str(command.address))
        logger.info("Application %d reported %s", credential.app_id, command.address)
        return REPORT_OK

    async def query_address(self, user_id: int) -> str:
        members = await self._store.smembers(user_key(user_id))
        if not members:
            logger.debug("No application registered for the user %d", user_id)
            return NO_APPLICATION_MESSAGE

        address = await self._store.hget(members[0], APP_ADDRESS_FIELD)
        if address is None:
            return NO_ADDRESS_MESSAGE
        return address_message(address)
