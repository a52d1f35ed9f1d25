"""Tests for chat command routing."""

import asyncio

import pytest

from iptracker.core.chat import (
    FAILURE_MESSAGE,
    MARKDOWN_V2,
    UNKNOWN_COMMAND_MESSAGE,
    ChatDispatcher,
    escape_markdown_v2,
)
from iptracker.core.commands import IssueCredential, QueryAddress
from iptracker.core.errors import WorkerUnavailableError


class StubBus:
    """Records submitted commands and answers from a fixed table."""

    def __init__(self, replies=None, error=None):
        self.submitted = []
        self.replies = replies or {}
        self.error = error

    async def submit(self, command):
        self.submitted.append(command)
        if self.error is not None:
            raise self.error
        return self.replies[type(command)]


def dispatch(bus, text, user_id=42):
    return asyncio.run(ChatDispatcher(bus).dispatch(user_id, text))


class TestDispatch:

    def test_token(self):
        bus = StubBus({IssueCredential: "1000:abcdef"})
        reply = dispatch(bus, "/token")
        assert bus.submitted == [IssueCredential(user_id=42)]
        assert reply.text == "Your token is `1000:abcdef`"
        assert reply.parse_mode == MARKDOWN_V2

    def test_get_my_ip(self):
        bus = StubBus({QueryAddress: "Your reported IP is `203.0.113.7`"})
        reply = dispatch(bus, "/getmyip")
        assert bus.submitted == [QueryAddress(user_id=42)]
        assert reply.text == "Your reported IP is `203.0.113.7`"
        assert reply.parse_mode == MARKDOWN_V2

    @pytest.mark.parametrize("text", ["/TOKEN", "/token@ip_tracker_bot", "  /token  extra"])
    def test_command_variants(self, text):
        bus = StubBus({IssueCredential: "1000:abcdef"})
        dispatch(bus, text)
        assert bus.submitted == [IssueCredential(user_id=42)]

    @pytest.mark.parametrize("text", ["/help", "/start", "hello there", ""])
    def test_help(self, text):
        bus = StubBus()
        reply = dispatch(bus, text)
        assert bus.submitted == []
        assert "These commands are supported:" in reply.text
        assert "/token - Generate application token" in reply.text
        assert "/getmyip - Get my PC VPN IP" in reply.text
        assert "/help - Show help message" in reply.text
        assert reply.parse_mode is None

    @pytest.mark.parametrize("text", ["/foo", "/", "/tokens"])
    def test_unknown_command(self, text):
        bus = StubBus()
        reply = dispatch(bus, text)
        assert bus.submitted == []
        assert reply.text == UNKNOWN_COMMAND_MESSAGE

    def test_worker_failure_becomes_apology(self):
        bus = StubBus(error=WorkerUnavailableError("Command worker is not running"))
        reply = dispatch(bus, "/getmyip")
        assert reply.text == FAILURE_MESSAGE
        assert reply.parse_mode is None

    def test_duplicate_registration_rejected(self):
        dispatcher = ChatDispatcher(StubBus())
        with pytest.raises(ValueError):
            dispatcher.register(dispatcher._commands["help"])


class TestEscapeMarkdownV2:

    def test_code_span_kept(self):
        assert escape_markdown_v2("Your reported IP is `203.0.113.7`") == "Your reported IP is `203.0.113.7`"

    def test_plain_text_escaped(self):
        assert escape_markdown_v2("No application registered, so no reports available") == \
            "No application registered, so no reports available"
        assert escape_markdown_v2("a.b!(c)") == r"a\.b\!\(c\)"

    def test_unbalanced_backticks_escaped(self):
        assert escape_markdown_v2("a`b.c") == r"a\`b\.c"
