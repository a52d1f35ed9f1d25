"""Tests for the outbound HTTP clients."""

from unittest import mock

import pytest
import requests

from iptracker.clients.reporter_client import ReporterClient, main
from iptracker.clients.telegram_client import TelegramApiError, TelegramBotClient


def fake_response(status_code=200, json_data=None):
    resp = mock.Mock(status_code=status_code, text="")
    resp.json.return_value = json_data if json_data is not None else {}
    return resp


class TestReporterClient:

    def test_report_posts_address_with_credential(self):
        session = mock.Mock()
        session.post.return_value = fake_response(200)
        client = ReporterClient("1000:abc", server_url="http://tracker:1234/", session=session)

        assert client.report("203.0.113.7") is True
        args, kwargs = session.post.call_args
        assert args == ("http://tracker:1234/app",)
        assert kwargs["data"] == b"203.0.113.7"
        assert kwargs["headers"]["Credential"] == "1000:abc"

    @pytest.mark.parametrize("status", [404, 406, 500])
    def test_rejected_report(self, status):
        session = mock.Mock()
        session.post.return_value = fake_response(status)
        assert ReporterClient("1000:abc", session=session).report("203.0.113.7") is False

    def test_network_error(self):
        session = mock.Mock()
        session.post.side_effect = requests.ConnectionError("refused")
        assert ReporterClient("1000:abc", session=session).report("203.0.113.7") is False

    def test_main_requires_address(self, capsys):
        assert main([]) == 2
        assert "usage" in capsys.readouterr().out


class TestTelegramBotClient:

    def test_set_webhook(self):
        session = mock.Mock()
        session.post.return_value = fake_response(200, {"ok": True, "result": True})
        client = TelegramBotClient("123:ABC", session=session)

        assert client.set_webhook("https://example.org/telegram/webhook", "s3cret") is True
        args, kwargs = session.post.call_args
        assert args == ("https://api.telegram.org/bot123:ABC/setWebhook",)
        assert kwargs["json"]["url"] == "https://example.org/telegram/webhook"
        assert kwargs["json"]["secret_token"] == "s3cret"

    def test_api_error(self):
        session = mock.Mock()
        session.post.return_value = fake_response(401, {"ok": False, "description": "Unauthorized"})
        with pytest.raises(TelegramApiError, match="Unauthorized"):
            TelegramBotClient("bad", session=session).set_webhook("https://example.org/hook")

    def test_network_error(self):
        session = mock.Mock()
        session.post.side_effect = requests.Timeout("slow")
        with pytest.raises(TelegramApiError):
            TelegramBotClient("123:ABC", session=session).set_webhook("https://example.org/hook")
