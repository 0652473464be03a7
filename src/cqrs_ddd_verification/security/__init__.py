"""Encryption of long-lived secrets (TOTP seeds) at rest.

Two interchangeable drivers:
- AES-256-GCM (cryptography)
- libsodium secretbox, XSalsa20-Poly1305 (PyNaCl)
"""

from cqrs_ddd_verification.security.aes_gcm import AesGcmCrypto
from cqrs_ddd_verification.security.factory import create_crypto, generate_key
from cqrs_ddd_verification.security.keys import decode_key
from cqrs_ddd_verification.security.ports import ICryptoProvider
from cqrs_ddd_verification.security.secretbox import SecretBoxCrypto

__all__: list[str] = [
    "ICryptoProvider",
    "AesGcmCrypto",
    "SecretBoxCrypto",
    "create_crypto",
    "generate_key",
    "decode_key",
]
