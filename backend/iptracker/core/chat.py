# iptracker/core/chat.py

"""
Chat command handling.

Maps one line of user text to a reply:

    "/token"     -> IssueCredential  -> "Your token is `1000:...`"
    "/getmyip"   -> QueryAddress     -> stored address or a fixed message
    "/help"      -> help text
    "/start"     -> help text
    "/anything"  -> "Unknown command. Would you repeat?"
    "hello"      -> help text

Commands are case-insensitive and may carry a "@botname" suffix, as
Telegram appends one in group chats.
"""

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from iptracker.core.commands import CommandBus, IssueCredential, QueryAddress
from iptracker.core.errors import CommandError

logger = logging.getLogger(__name__)

MARKDOWN_V2 = "MarkdownV2"

UNKNOWN_COMMAND_MESSAGE = "Unknown command. Would you repeat?"
FAILURE_MESSAGE = "Something went wrong, please try again later."
HELP_INTRO = (
    "I can help you with tracking your PC VPN IP address, so you can\n"
    "connect to it from another location if you are connected to the same VPN network."
)

_MARKDOWN_V2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown_v2(text: str) -> str:
    """Escape text for MarkdownV2, leaving `code` spans as code."""
    parts = text.split("`")
    if len(parts) % 2 == 0:
        # unbalanced backticks, treat it all as plain text
        return _MARKDOWN_V2_SPECIAL.sub(r"\\\1", text)
    escaped = []
    for i, part in enumerate(parts):
        if i % 2:
            escaped.append(part.replace("\\", "\\\\"))
        else:
            escaped.append(_MARKDOWN_V2_SPECIAL.sub(r"\\\1", part))
    return "`".join(escaped)


@dataclass
class ChatReply:
    text: str
    parse_mode: Optional[str] = None


@dataclass
class ChatCommand:
    name: str
    description: str
    handler: Callable[[int], Awaitable[ChatReply]]


class ChatDispatcher:
    """Routes chat text from one user to the matching command handler."""

    def __init__(self, bus: CommandBus):
        self._bus = bus
        self._commands: Dict[str, ChatCommand] = {}
        self.register(ChatCommand("token", "Generate application token", self._token))
        self.register(ChatCommand("getmyip", "Get my PC VPN IP", self._get_my_ip))
        self.register(ChatCommand("help", "Show help message", self._help))

    def register(self, command: ChatCommand) -> None:
        key = command.name.lower()
        if key in self._commands:
            raise ValueError(f"Command name collision: '{key}' is already registered")
        self._commands[key] = command

    def descriptions(self) -> str:
        lines = ["These commands are supported:"]
        for command in self._commands.values():
            lines.append(f"/{command.name} - {command.description}")
        return "\n".join(lines)

    def help_text(self) -> str:
        return f"{HELP_INTRO}\n\n{self.descriptions()}"

    async def dispatch(self, user_id: int, text: str) -> ChatReply:
        stripped = text.strip()
        if not stripped.startswith("/"):
            return ChatReply(self.help_text())

        parts = stripped[1:].split(None, 1)
        name = parts[0].split("@", 1)[0].lower() if parts else ""
        if name == "start":
            return ChatReply(self.help_text())

        command = self._commands.get(name)
        if command is None:
            return ChatReply(UNKNOWN_COMMAND_MESSAGE)

        try:
            return await command.handler(user_id)
        except CommandError as e:
            logger.error("/%s for user %d failed: %s", name, user_id, e)
            return ChatReply(FAILURE_MESSAGE)

    async def _token(self, user_id: int) -> ChatReply:
        token = await self._bus.submit(IssueCredential(user_id=user_id))
        return ChatReply(escape_markdown_v2(f"Your token is `{token}`"), MARKDOWN_V2)

    async def _get_my_ip(self, user_id: int) -> ChatReply:
        response = await self._bus.submit(QueryAddress(user_id=user_id))
        logger.debug("Get my IP response: %r", response)
        return ChatReply(escape_markdown_v2(response), MARKDOWN_V2)

    async def _help(self, user_id: int) -> ChatReply:
        return ChatReply(self.help_text())
