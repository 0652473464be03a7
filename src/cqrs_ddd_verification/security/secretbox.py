"""XSalsa20-Poly1305 (libsodium secretbox) encryption via PyNaCl."""

from __future__ import annotations

import base64
import binascii

import nacl.exceptions
import nacl.secret
import nacl.utils

from ..exceptions import DecryptionFailedError, InvalidPayloadError
from .keys import require_key, to_bytes
from .ports import ICryptoProvider


class SecretBoxCrypto(ICryptoProvider):
    """libsodium secretbox with a random 192-bit nonce per message.

    The nonce is prepended to the box and the whole payload base64-encoded.
    """

    name = "secretbox"
    key_length = nacl.secret.SecretBox.KEY_SIZE

    def __init__(self, key: bytes | str) -> None:
        """Initialize the driver.

        Args:
            key: 32-byte key, raw or base64-encoded.

        Raises:
            InvalidKeyError: If the key is empty or not 32 bytes once decoded.
        """
        raw = require_key(key, nacl.secret.SecretBox.KEY_SIZE, "SecretBoxCrypto")
        self._box = nacl.secret.SecretBox(raw)

    def encrypt(self, plaintext: bytes | str) -> str:
        nonce = nacl.utils.random(nacl.secret.SecretBox.NONCE_SIZE)
        sealed = self._box.encrypt(to_bytes(plaintext), nonce)
        return base64.b64encode(bytes(sealed)).decode("ascii")

    def decrypt(self, payload: str) -> bytes:
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidPayloadError(
                "Invalid base64 payload for SecretBoxCrypto."
            ) from e

        nonce_size = nacl.secret.SecretBox.NONCE_SIZE
        if len(data) < nonce_size + nacl.secret.SecretBox.MACBYTES:
            raise InvalidPayloadError("Invalid payload size for SecretBoxCrypto.")

        try:
            return self._box.decrypt(data[nonce_size:], data[:nonce_size])
        except nacl.exceptions.CryptoError as e:
            raise DecryptionFailedError(
                "Decryption failed using SecretBoxCrypto."
            ) from e

    def decrypt_text(self, payload: str) -> str:
        return self.decrypt(payload).decode("utf-8")


__all__: list[str] = ["SecretBoxCrypto"]
