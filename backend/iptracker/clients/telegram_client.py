# iptracker/clients/telegram_client.py

import logging
import os
from typing import Optional

import requests

logger = logging.getLogger(__name__)

# =========================
# CONFIGURATION
# =========================

TELEGRAM_API_URL = "https://api.telegram.org"
TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")
TELEGRAM_WEBHOOK_URL = os.getenv("TELEGRAM_WEBHOOK_URL")
REQUEST_TIMEOUT = 10  # seconds


class TelegramApiError(Exception):
    pass


class TelegramBotClient:
    """Minimal Bot API client, enough to register the webhook."""

    def __init__(self, token: str, session: Optional[requests.Session] = None):
        self.token = token
        self.session = session or requests.Session()

    def _call(self, method: str, payload: dict) -> dict:
        url = f"{TELEGRAM_API_URL}/bot{self.token}/{method}"
        try:
            resp = self.session.post(url, json=payload, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise TelegramApiError(f"{method} request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code != 200 or not data.get("ok"):
            raise TelegramApiError(
                f"{method} failed ({resp.status_code}): {data.get('description', resp.text)}"
            )
        return data.get("result")

    def set_webhook(self, url: str, secret_token: Optional[str] = None):
        payload = {"url": url, "allowed_updates": ["message"]}
        if secret_token:
            payload["secret_token"] = secret_token
        result = self._call("setWebhook", payload)
        logger.info("Telegram webhook set to %s", url)
        return result
