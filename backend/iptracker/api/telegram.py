# iptracker/api/telegram.py

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from iptracker.core.chat import ChatDispatcher
from iptracker.models.telegram import TelegramUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram")

TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET")


def get_dispatcher(request: Request) -> ChatDispatcher:
    return request.app.state.chat_dispatcher


@router.post("/webhook")
async def telegram_webhook(
    update: TelegramUpdate,
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    """
    Receive one Bot API update and answer it inline.

    The reply is returned as a sendMessage method call in the webhook
    response, so no separate request to the Bot API is needed.
    """
    if TELEGRAM_WEBHOOK_SECRET and secret_token != TELEGRAM_WEBHOOK_SECRET:
        raise HTTPException(status_code=403, detail="Invalid webhook secret")

    message = update.message
    if message is None or message.text is None or message.from_user is None:
        return {}

    user = message.from_user
    logger.debug("Message from user %d - locale %s", user.id, user.language_code)

    reply = await dispatcher.dispatch(user.id, message.text)

    response = {
        "method": "sendMessage",
        "chat_id": message.chat.id,
        "text": reply.text,
    }
    if reply.parse_mode:
        response["parse_mode"] = reply.parse_mode
    return response
