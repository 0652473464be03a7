"""Verification-related exceptions.

Configuration and lookup errors are raised eagerly. Per-attempt failures
(wrong code, expired code, locked challenge) are never exceptions: verify
paths return ``False``. Issuance abuse (rate limit, resend cooldown) is
raised so callers can show a distinct wait message.
"""

from __future__ import annotations

# ═══════════════════════════════════════════════════════════════
# BASE VERIFICATION ERROR
# ═══════════════════════════════════════════════════════════════


class VerificationError(Exception):
    """Root exception for the verification engine."""


# ═══════════════════════════════════════════════════════════════
# CONFIGURATION ERRORS
# ═══════════════════════════════════════════════════════════════


class ConfigurationError(VerificationError):
    """Raised when the engine is wired with invalid configuration."""


class UnknownDriverError(ConfigurationError):
    """Raised when a step or crypto driver name cannot be resolved.

    Attributes:
        name: The driver name that was requested.
    """

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(message or f"Unknown driver: {name!r}")
        self.name = name


class UnsupportedAlgorithmError(ConfigurationError):
    """Raised when an HMAC algorithm is required but not supported."""


class InvalidKeyError(ConfigurationError):
    """Raised when crypto key material is empty or has the wrong length."""


class UnknownTransportError(ConfigurationError):
    """Raised when an SMS transport name cannot be resolved."""


# ═══════════════════════════════════════════════════════════════
# CRYPTO ERRORS
# ═══════════════════════════════════════════════════════════════


class CryptoError(VerificationError):
    """Base class for encryption/decryption failures."""


class InvalidPayloadError(CryptoError):
    """Raised when a payload is not valid base64 or is too short."""


class DecryptionFailedError(CryptoError):
    """Raised when authentication of a ciphertext fails."""


# ═══════════════════════════════════════════════════════════════
# ISSUANCE ERRORS
# ═══════════════════════════════════════════════════════════════


class OtpIssuanceError(VerificationError):
    """Base class for refused one-time code issuance.

    Attributes:
        retry_after: Seconds until a new attempt may succeed, if known.
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RateLimitExceededError(OtpIssuanceError):
    """Raised when too many codes were issued within the burst window."""

    def __init__(
        self,
        message: str = "OTP rate limit exceeded.",
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, retry_after)


class ResendCooldownActiveError(OtpIssuanceError):
    """Raised when a code is re-issued before the resend cooldown elapsed."""

    def __init__(
        self,
        message: str = "OTP resend cooldown is active.",
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, retry_after)


# ═══════════════════════════════════════════════════════════════
# RUNTIME ERRORS
# ═══════════════════════════════════════════════════════════════


class IdentityKeyMissingError(VerificationError):
    """Raised when the principal has no usable identifier for OTP storage."""


class StorageError(VerificationError):
    """Raised when a challenge or rate window cannot be persisted."""


class LockAcquisitionError(VerificationError):
    """Raised when a per-key lock cannot be acquired in time.

    Attributes:
        key: The lock key.
        timeout: Seconds waited before giving up.
    """

    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(f"Could not acquire lock for {key!r} within {timeout}s")
        self.key = key
        self.timeout = timeout


class RouteResolutionError(VerificationError):
    """Raised by route resolvers when a descriptor cannot become a URL."""


__all__: list[str] = [
    # Base
    "VerificationError",
    # Configuration
    "ConfigurationError",
    "UnknownDriverError",
    "UnsupportedAlgorithmError",
    "InvalidKeyError",
    "UnknownTransportError",
    # Crypto
    "CryptoError",
    "InvalidPayloadError",
    "DecryptionFailedError",
    # Issuance
    "OtpIssuanceError",
    "RateLimitExceededError",
    "ResendCooldownActiveError",
    # Runtime
    "IdentityKeyMissingError",
    "StorageError",
    "LockAcquisitionError",
    "RouteResolutionError",
]
