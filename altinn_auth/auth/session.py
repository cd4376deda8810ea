"""
Session Cookie Module
=====================

Encodes the session record into an opaque cookie value and back.

The value is URL-safe base64 of compact JSON. It is not signed or encrypted;
anyone holding the cookie can read the tokens in it.

Decoding tolerates one extra layer of percent-encoding, which some transports
apply on write and some clients do not undo on read:

    1. base64url -> JSON on the raw value
    2. percent-decode once, then base64url -> JSON again
    3. otherwise an empty record

Callers only ever see a valid SessionRecord or an empty one.
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import unquote

from fastapi import Request, Response
from pydantic import ValidationError

from altinn_auth.config import Settings
from altinn_auth.models import SessionRecord

logger = logging.getLogger(__name__)


SESSION_COOKIE_NAME = "altinn-session"
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60


# =============================================================================
# Codec
# =============================================================================

def encode_session(record: SessionRecord) -> str:
    """
    Encode a session record as a cookie-safe string.

    Fields that are None are dropped before serialization.

    Args:
        record: Session record to encode

    Returns:
        Unpadded URL-safe base64 of the JSON payload
    """
    payload = record.to_payload()
    json_string = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    encoded = base64.urlsafe_b64encode(json_string.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def _parse_payload(value: str) -> Optional[Dict[str, Any]]:
    """Strict base64url -> JSON object, or None if value is not one."""
    stripped = value.strip().rstrip("=")
    if not stripped:
        return None

    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        parsed = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        return None

    if not isinstance(parsed, dict):
        return None
    return parsed


def decode_session(raw: Optional[str]) -> SessionRecord:
    """
    Decode a cookie value into a session record.

    Never raises: an empty, corrupt or foreign value yields an empty record.

    Args:
        raw: Cookie value, possibly percent-encoded once more

    Returns:
        Decoded SessionRecord, or an empty one
    """
    if not raw:
        return SessionRecord()

    payload = _parse_payload(raw)
    if payload is None:
        payload = _parse_payload(unquote(raw))

    if payload is None:
        logger.debug("Session cookie could not be decoded; treating as no session")
        return SessionRecord()

    try:
        return SessionRecord.model_validate(payload)
    except ValidationError:
        logger.debug("Session cookie payload has unexpected shape; treating as no session")
        return SessionRecord()


# =============================================================================
# Cookie Helpers
# =============================================================================

def find_session_cookie(cookies: Mapping[str, str]) -> Optional[str]:
    """
    Look up the session cookie value.

    Falls back to a case-insensitive name match when the exact name is not
    present.
    """
    value = cookies.get(SESSION_COOKIE_NAME)
    if value is not None:
        return value

    wanted = SESSION_COOKIE_NAME.lower()
    for name, value in cookies.items():
        if name.lower() == wanted:
            logger.debug(f"Found session cookie with different casing: {name}")
            return value
    return None


def read_session(request: Request) -> SessionRecord:
    """Decode the session carried by a request; no cookie means empty."""
    return decode_session(find_session_cookie(request.cookies))


def write_session(response: Response, record: SessionRecord, settings: Settings) -> None:
    """Set the session cookie on a response, replacing any previous value."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=encode_session(record),
        max_age=SESSION_MAX_AGE_SECONDS,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_session(response: Response, settings: Settings) -> None:
    """Expire the session cookie on a response."""
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_session(request: Request) -> SessionRecord:
    """
    FastAPI dependency returning the request's session record.

    Usage in routes:
        @router.get("/thing")
        async def route(session: SessionRecord = Depends(get_session)):
            ...
    """
    return read_session(request)


__all__ = [
    "SESSION_COOKIE_NAME",
    "SESSION_MAX_AGE_SECONDS",
    "encode_session",
    "decode_session",
    "find_session_cookie",
    "read_session",
    "write_session",
    "clear_session",
    "get_session",
]
