# iptracker/core/credentials.py

import hashlib
import time
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import constant_time

from iptracker.core.errors import CredentialFormatError

DIGEST_SIZE = 16  # bytes, 32 hex chars
SEPARATOR = ":"


@dataclass(frozen=True)
class Credential:
    app_id: int
    token: str


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def generate_token(app_id: int, user_id: int, now_ms: Optional[int] = None) -> str:
    """
    Mint a credential for an application.

    The digest input is the user id followed by the issue time in
    milliseconds; neither is secret, they only diversify the digest.
    """
    if now_ms is None:
        now_ms = _now_ms()
    hash_input = f"{user_id}{now_ms}".encode()
    digest = hashlib.blake2s(hash_input, digest_size=DIGEST_SIZE).hexdigest()
    return f"{app_id}{SEPARATOR}{digest}"


def parse_credential(credential: str) -> Credential:
    """Split a presented credential into its application id and the full token."""
    id_str, sep, _ = credential.partition(SEPARATOR)
    if not sep:
        raise CredentialFormatError(
            CredentialFormatError.MISSING_SEPARATOR, "Invalid token format"
        )
    # ASCII digits only
    if not (id_str.isascii() and id_str.isdigit()):
        raise CredentialFormatError(
            CredentialFormatError.NON_NUMERIC_ID, "Failed to convert ID"
        )
    return Credential(app_id=int(id_str), token=credential)


def tokens_match(stored: str, presented: str) -> bool:
    return constant_time.bytes_eq(stored.encode(), presented.encode())
