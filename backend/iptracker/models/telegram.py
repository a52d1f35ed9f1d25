# iptracker/models/telegram.py

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    language_code: Optional[str] = None


class TelegramChat(BaseModel):
    id: int


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    text: Optional[str] = None


class TelegramUpdate(BaseModel):
    """Subset of a Bot API Update; other update kinds are ignored."""

    update_id: int
    message: Optional[TelegramMessage] = None
