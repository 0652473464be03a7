"""AES-256-GCM encryption for TOTP secrets and other stored credentials."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionFailedError, InvalidPayloadError
from .keys import require_key, to_bytes
from .ports import ICryptoProvider

_KEY_SIZE = 32
_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM
_TAG_SIZE = 16


class AesGcmCrypto(ICryptoProvider):
    """AES-256-GCM with a random 96-bit nonce per message.

    Payload layout (base64-encoded): ``nonce(12) || tag(16) || ciphertext``.

    Example:
        ```python
        crypto = AesGcmCrypto(os.environ["VERIFICATION_CRYPTO__KEY"])
        stored = crypto.encrypt("JBSWY3DPEHPK3PXP")
        secret = crypto.decrypt_text(stored)
        ```
    """

    name = "aes-gcm"
    key_length = _KEY_SIZE

    def __init__(self, key: bytes | str) -> None:
        """Initialize the driver.

        Args:
            key: 32-byte key, raw or base64-encoded.

        Raises:
            InvalidKeyError: If the key is empty or not 32 bytes once decoded.
        """
        self._aesgcm = AESGCM(require_key(key, _KEY_SIZE, "AesGcmCrypto"))

    def encrypt(self, plaintext: bytes | str) -> str:
        nonce = os.urandom(_NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, to_bytes(plaintext), None)
        # cryptography appends the tag; the stored layout puts it first.
        ciphertext, tag = sealed[:-_TAG_SIZE], sealed[-_TAG_SIZE:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, payload: str) -> bytes:
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidPayloadError(
                "Invalid base64 payload for AesGcmCrypto."
            ) from e

        if len(data) < _NONCE_SIZE + _TAG_SIZE:
            raise InvalidPayloadError("Invalid payload size for AesGcmCrypto.")

        nonce = data[:_NONCE_SIZE]
        tag = data[_NONCE_SIZE : _NONCE_SIZE + _TAG_SIZE]
        ciphertext = data[_NONCE_SIZE + _TAG_SIZE :]

        try:
            return self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionFailedError("Decryption failed using AesGcmCrypto.") from e

    def decrypt_text(self, payload: str) -> str:
        return self.decrypt(payload).decode("utf-8")


__all__: list[str] = ["AesGcmCrypto"]
