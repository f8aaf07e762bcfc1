"""ULID generation for Hearth record identifiers.

Identifiers are lexicographically sortable by creation time, which keeps
store listings and log lines in a natural order. Record ids carry a short
prefix naming their kind (``sig_``, ``act_``, ``dig_``).
"""

from __future__ import annotations

import secrets
import time

_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_TIMESTAMP_LIMIT = 1 << 48


def encode_ulid(value: int) -> str:
    """Encode a 128-bit integer as 26 Crockford Base32 characters."""
    if value < 0 or value >= (1 << 128):
        raise ValueError("ULID value must fit in 128 bits")
    chars = []
    for _ in range(26):
        value, remainder = divmod(value, 32)
        chars.append(_ALPHABET[remainder])
    return "".join(reversed(chars))


def generate_ulid_str(*, timestamp_ms: int | None = None) -> str:
    """Return a new ULID: 48 bits of milliseconds then 80 random bits."""
    ts_ms = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    if ts_ms < 0 or ts_ms >= _TIMESTAMP_LIMIT:
        raise ValueError("timestamp_ms out of ULID 48-bit range")
    entropy = int.from_bytes(secrets.token_bytes(10), byteorder="big")
    return encode_ulid((ts_ms << 80) | entropy)


def make_id(prefix: str, *, timestamp_ms: int | None = None) -> str:
    """Return ``<prefix>_<ULID>``."""
    if not prefix or not prefix.isalnum():
        raise ValueError("id prefix must be a non-empty alphanumeric string")
    return f"{prefix}_{generate_ulid_str(timestamp_ms=timestamp_ms)}"
