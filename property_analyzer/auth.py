"""
    HTTP Basic authentication gate for the HTML pages.

    API routes are deliberately left open, and the gate lets everything through when no
    credentials are configured. Credentials are compared with plain equality.
"""
import base64
import binascii
import logging
import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import PlainTextResponse

API_PREFIX = "/api/"
STATIC_PREFIXES = ("/static/", "/favicon.ico")
STATIC_SUFFIXES = (".jpg", ".jpeg", ".gif", ".png", ".svg", ".webp")

AUTH_REALM = 'Basic realm="Secure Area"'


def get_credentials() -> Optional[Tuple[str, str]]:
    username = os.getenv("BASIC_AUTH_USERNAME")
    password = os.getenv("BASIC_AUTH_PASSWORD")
    if not username or not password:
        return None
    return username, password


def is_exempt_path(path: str) -> bool:
    if path.startswith(API_PREFIX):
        return True
    return path.startswith(STATIC_PREFIXES) or path.lower().endswith(STATIC_SUFFIXES)


def decode_basic_auth(header: str) -> Optional[Tuple[str, Optional[str]]]:
    """
    Decodes an `Authorization: Basic <token>` value into (user, password).
    Whitespace inside the token is ignored and missing padding is restored.
    Returns None if the token is not valid base64 text.
    """
    parts = header.split(" ")
    token = "".join((parts[1] if len(parts) > 1 else "").split())
    # browsers accept unpadded tokens
    token += "=" * (-len(token) % 4)
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        logging.error(f"AUTH - Error parsing auth header: {e}")
        return None
    fields = decoded.split(":")
    return fields[0], fields[1] if len(fields) > 1 else None


def unauthorized_response() -> PlainTextResponse:
    return PlainTextResponse(
        "Authentication required",
        status_code=401,
        headers={"WWW-Authenticate": AUTH_REALM},
    )


async def basic_auth_gate(request: Request, call_next):
    """
    Middleware: challenges non-API requests for the configured Basic credentials.
    """
    if is_exempt_path(request.url.path):
        return await call_next(request)

    credentials = get_credentials()
    if credentials is None:
        logging.warning("AUTH - Basic auth credentials not configured, skipping authentication")
        return await call_next(request)

    auth_header = request.headers.get("authorization")
    if auth_header:
        decoded = decode_basic_auth(auth_header)
        if decoded is not None and decoded == credentials:
            return await call_next(request)

    logging.info(f"AUTH - Denied access to '{request.url.path}'")
    return unauthorized_response()
