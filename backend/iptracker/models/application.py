# iptracker/models/application.py

from iptracker.core.errors import CorruptRecordError

# Key layout
# user:id            counter used to mint application ids
# user:<user_id>     set of application keys owned by the user
# app:<app_id>       hash with the fields below

APP_ID_COUNTER_KEY = "user:id"

APP_TOKEN_FIELD = "token"
APP_OWNER_FIELD = "id"
APP_ADDRESS_FIELD = "address"


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


def app_key(app_id: int) -> str:
    return f"app:{app_id}"


def parse_app_key(key: str) -> int:
    """Recover the numeric application id from an ``app:<id>`` member."""
    prefix, sep, raw_id = key.partition(":")
    if prefix != "app" or not sep or not (raw_id.isascii() and raw_id.isdigit()):
        raise CorruptRecordError(f"Invalid application entry in the store: {key!r}")
    return int(raw_id)
