from __future__ import annotations

import os
import secrets
import time
import uuid


def new_account_id() -> str:
    """
    Time-ordered UUIDv7 string for identity-provider accounts.

    48-bit Unix time in milliseconds, then version and variant bits over
    random bytes. Also used as a SQLAlchemy column default, so it takes no
    arguments.
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def new_blob_name(prefix: str = "img") -> str:
    """Random, URL-safe file stem such as 'img_3f9a0c1d2b7e4a55'."""
    return f"{prefix}_{secrets.token_hex(8)}"
