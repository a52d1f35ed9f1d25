# iptracker/core/commands.py

import asyncio
import logging
import os
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress

from iptracker.core.errors import UnsupportedAddressError, WorkerUnavailableError

logger = logging.getLogger(__name__)

COMMAND_QUEUE_SIZE = int(os.getenv("COMMAND_QUEUE_SIZE", "16"))


# =========================
# COMMANDS
# =========================

class IssueCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int = Field(ge=0)


class ReportAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    credential: str
    address: IPvAnyAddress


class QueryAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int = Field(ge=0)


Command = Union[IssueCredential, ReportAddress, QueryAddress]


@dataclass
class Envelope:
    """A command paired with the one-shot slot its reply goes into."""

    command: Command
    reply: asyncio.Future


# =========================
# BUS
# =========================

class CommandBus:
    """
    FIFO queue between the front-ends and the single worker.

    Front-ends call submit() and await the reply; the worker calls receive()
    and resolves each envelope's future exactly once.
    """

    def __init__(self, maxsize: int = COMMAND_QUEUE_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, command: Command) -> str:
        if isinstance(command, ReportAddress) and not isinstance(command.address, IPv4Address):
            raise UnsupportedAddressError(f"Only IPv4 addresses are accepted, got {command.address}")
        if self._closed:
            raise WorkerUnavailableError("Command worker is not running")

        reply = asyncio.get_running_loop().create_future()
        await self._queue.put(Envelope(command, reply))
        # close() may have drained the queue while put() was blocked
        if self._closed and not reply.done():
            reply.set_exception(WorkerUnavailableError("Command worker stopped"))
        return await reply

    async def receive(self) -> Envelope:
        return await self._queue.get()

    def close(self) -> None:
        """Refuse new commands and fail everything still queued."""
        self._closed = True
        while not self._queue.empty():
            envelope = self._queue.get_nowait()
            if not envelope.reply.done():
                envelope.reply.set_exception(WorkerUnavailableError("Command worker stopped"))
