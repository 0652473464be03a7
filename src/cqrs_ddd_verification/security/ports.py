"""ICryptoProvider - protocol for symmetric encryption of secrets at rest."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ICryptoProvider(Protocol):
    """Symmetric authenticated encryption for stored secrets (TOTP seeds).

    Implementations MUST raise :class:`~cqrs_ddd_verification.exceptions.CryptoError`
    subclasses on failure and never return partially decrypted data.
    """

    name: str
    key_length: int

    def encrypt(self, plaintext: bytes | str) -> str:
        """Encrypt ``plaintext`` into a base64 payload safe for a text column."""
        ...

    def decrypt(self, payload: str) -> bytes:
        """Decrypt a payload produced by :meth:`encrypt`.

        Raises:
            InvalidPayloadError: Malformed encoding or truncated payload.
            DecryptionFailedError: Authentication tag check failed.
        """
        ...

    def decrypt_text(self, payload: str) -> str:
        """Decrypt a payload and decode it as UTF-8."""
        ...
