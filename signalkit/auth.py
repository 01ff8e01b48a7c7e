"""Credential helpers for the chat server's HTTP API.

Covers minting device passwords, building HTTP Basic ``Authorization``
header values, and the padded standard base64 used in request bodies.
"""

from __future__ import annotations

import base64
import secrets

PASSWORD_BYTES = 24


def mint_password() -> str:
    """Return a fresh random device password: 24 random bytes, unpadded base64."""
    raw = secrets.token_bytes(PASSWORD_BYTES)
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def basic_auth_header(user: str, password: str) -> str:
    """Build an HTTP Basic header value, ``Basic base64(user:password)``."""
    encoded = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def b64(data: bytes) -> str:
    """Encode ``data`` as padded standard base64 for JSON request bodies."""
    return base64.b64encode(bytes(data)).decode("ascii")