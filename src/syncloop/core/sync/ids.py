"""
Identifier and secret generation for sync entries.
"""

from __future__ import annotations

import base64
import secrets
import time

SYNC_ID_PREFIX = "cl_syn_"
WEBHOOK_TOKEN_PREFIX = "cl_tkn_"


def generate_sync_id() -> str:
    """
    Generate a new sync entry id.

    The random part is prefixed with the creation time in milliseconds as
    fixed-width hex, so ids sort lexicographically in creation order.

    Example:
        >>> generate_sync_id()  # doctest: +SKIP
        'cl_syn_0192a3b4c5d6e1f2a3b4c5d6e7f8'
    """
    millis = int(time.time() * 1000)
    return f"{SYNC_ID_PREFIX}{millis:012x}{secrets.token_hex(8)}"


def generate_webhook_secret() -> str:
    """Generate a shared webhook secret: the token prefix plus a base64 wrapped random password."""
    password = secrets.token_urlsafe(24)
    return WEBHOOK_TOKEN_PREFIX + base64.b64encode(password.encode()).decode()
