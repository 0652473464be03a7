"""TOTP/HOTP code computation (RFC 4226 / RFC 6238).

Works with any TOTP-compatible authenticator app (Google Authenticator,
Microsoft Authenticator, Authy, 1Password, FreeOTP).

Uses pyotp for the HMAC truncation. Secrets go through :func:`base32_decode`
first so that separators, lower case and malformed input are handled here:
an undecodable secret yields an empty key and verification simply fails.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pyotp

from .exceptions import UnsupportedAlgorithmError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("cqrs_ddd.verification.totp")

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_DIGESTS: dict[str, Callable[..., hashlib._Hash]] = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}

_BASE32_SECRET = re.compile(r"^[A-Z2-7]{16,64}$")


def normalize_secret(secret: str) -> str:
    """Upper-case a secret and drop spaces, dashes and padding."""
    return secret.upper().replace(" ", "").replace("-", "").rstrip("=")


def base32_decode(secret: str) -> bytes:
    """Decode a Base32 secret into raw key bytes.

    Trailing bits that do not fill a whole byte are discarded. Any character
    outside ``A-Z2-7`` aborts decoding and returns ``b""``.
    """
    buffer = 0
    bits = 0
    out = bytearray()
    for char in normalize_secret(secret):
        value = BASE32_ALPHABET.find(char)
        if value < 0:
            return b""
        buffer = (buffer << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
    return bytes(out)


def is_base32_secret(value: str) -> bool:
    """Whether ``value`` looks like a plain (unencrypted) Base32 TOTP secret."""
    return bool(_BASE32_SECRET.match(value))


def resolve_digest(algorithm: str) -> Callable[..., hashlib._Hash]:
    """Map an algorithm name to a hashlib constructor, falling back to SHA-1."""
    digest = _DIGESTS.get(algorithm.strip().lower().replace("-", ""))
    if digest is None:
        logger.debug("Unsupported TOTP algorithm %r, using sha1", algorithm)
        return hashlib.sha1
    return digest


def require_digest(algorithm: str) -> Callable[..., hashlib._Hash]:
    """Like :func:`resolve_digest` but raise for unknown names."""
    digest = _DIGESTS.get(algorithm.strip().lower().replace("-", ""))
    if digest is None:
        raise UnsupportedAlgorithmError(f"Unsupported TOTP algorithm: {algorithm!r}")
    return digest


def hotp(key: bytes, counter: int, digits: int = 6, algorithm: str = "sha1") -> str:
    """Compute the HOTP value for ``counter`` as a zero-padded string.

    Args:
        key: Raw key bytes (already Base32-decoded).
        counter: Non-negative moving factor.
        digits: Code length (1-10).
        algorithm: ``sha1``, ``sha256`` or ``sha512``.
    """
    # pyotp takes the secret in Base32 form; re-encode the canonical bytes.
    encoded = base64.b32encode(key).decode("ascii")
    return pyotp.HOTP(encoded, digits=digits, digest=resolve_digest(algorithm)).at(
        counter
    )


def totp_counter(timestamp: float, period: int = 30) -> int:
    return int(timestamp // max(1, period))


@dataclass(frozen=True)
class TotpAlgorithm:
    """TOTP parameters plus code generation and drift-tolerant verification.

    Attributes:
        digits: Code length.
        period: Time step in seconds.
        algorithm: HMAC algorithm name; unknown names fall back to SHA-1.
        drift: Accepted time steps before and after the current one.
    """

    digits: int = 6
    period: int = 30
    algorithm: str = "sha1"
    drift: int = 1

    def at(self, secret: str, timestamp: float) -> str:
        """Return the code for ``secret`` at ``timestamp`` ("" if undecodable)."""
        key = base32_decode(secret)
        if not key:
            return ""
        return hotp(key, totp_counter(timestamp, self.period), self.digits, self.algorithm)

    def verify(self, secret: str, code: str, timestamp: float) -> bool:
        """Check ``code`` against every counter in ``[c - drift, c + drift]``.

        Never raises; malformed secrets or codes are simply rejected.
        """
        if len(code) != self.digits or not (code.isascii() and code.isdigit()):
            return False

        key = base32_decode(secret)
        if not key:
            return False

        counter = totp_counter(timestamp, self.period)
        matched = False
        for offset in range(-self.drift, self.drift + 1):
            candidate = counter + offset
            if candidate < 0:
                continue
            expected = hotp(key, candidate, self.digits, self.algorithm)
            # Keep looping after a match so timing does not reveal the offset.
            matched |= secrets.compare_digest(expected.encode(), code.encode())
        return matched

    def provisioning_uri(self, secret: str, account: str, issuer: str) -> str:
        """Build the ``otpauth://`` URI shown as a QR code during enrollment.

        Raises:
            UnsupportedAlgorithmError: The algorithm cannot be advertised.
        """
        return pyotp.TOTP(
            normalize_secret(secret),
            digits=self.digits,
            digest=require_digest(self.algorithm),
            interval=self.period,
        ).provisioning_uri(name=account, issuer_name=issuer)


def totp_at(
    secret: str,
    timestamp: float,
    period: int = 30,
    digits: int = 6,
    algorithm: str = "sha1",
) -> str:
    return TotpAlgorithm(digits=digits, period=period, algorithm=algorithm).at(
        secret, timestamp
    )


def verify_totp(
    secret: str,
    code: str,
    timestamp: float,
    period: int = 30,
    digits: int = 6,
    algorithm: str = "sha1",
    drift: int = 1,
) -> bool:
    """Functional form of :meth:`TotpAlgorithm.verify`."""
    algo = TotpAlgorithm(digits=digits, period=period, algorithm=algorithm, drift=drift)
    return algo.verify(secret, code, timestamp)


def provisioning_uri(
    secret: str,
    account: str,
    issuer: str,
    period: int = 30,
    digits: int = 6,
    algorithm: str = "sha1",
) -> str:
    algo = TotpAlgorithm(digits=digits, period=period, algorithm=algorithm)
    return algo.provisioning_uri(secret, account, issuer)


def generate_secret() -> str:
    """Generate a new 160-bit TOTP secret (Base32, 32 chars)."""
    return pyotp.random_base32()


def format_secret(secret: str) -> str:
    """Format a secret as groups of 4 characters for manual entry."""
    secret = normalize_secret(secret)
    return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))


__all__: list[str] = [
    "TotpAlgorithm",
    "base32_decode",
    "normalize_secret",
    "is_base32_secret",
    "resolve_digest",
    "require_digest",
    "hotp",
    "totp_counter",
    "totp_at",
    "verify_totp",
    "provisioning_uri",
    "generate_secret",
    "format_secret",
]
