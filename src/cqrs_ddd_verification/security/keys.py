"""Key material helpers shared by the crypto drivers."""

from __future__ import annotations

import base64
import binascii
import os

from ..exceptions import InvalidKeyError


def to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def decode_key(key: bytes | str, expected_length: int) -> bytes:
    """Accept a raw or base64-encoded key.

    Raw material of the expected length is returned as-is. Otherwise a strict
    base64 decode is attempted and used only if it yields the expected length;
    failing that the original bytes are returned so the caller's length check
    rejects them.
    """
    raw = to_bytes(key)
    if len(raw) == expected_length:
        return raw

    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        return raw

    if len(decoded) == expected_length:
        return decoded
    return raw


def require_key(key: bytes | str, expected_length: int, driver: str) -> bytes:
    """Decode ``key`` and enforce its length, raising InvalidKeyError."""
    if not key:
        raise InvalidKeyError(f"{driver} requires a non-empty key.")

    raw = decode_key(key, expected_length)
    if len(raw) != expected_length:
        raise InvalidKeyError(
            f"Invalid key length for {driver}. "
            f"Expected {expected_length} bytes, got {len(raw)}."
        )
    return raw


def random_key(length: int) -> str:
    """Return ``length`` random bytes, base64-encoded for env/config files."""
    return base64.b64encode(os.urandom(length)).decode("ascii")
