"""Factory for crypto driver instances."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import UnknownDriverError
from .aes_gcm import AesGcmCrypto
from .keys import random_key
from .secretbox import SecretBoxCrypto

if TYPE_CHECKING:
    from .ports import ICryptoProvider

_DRIVERS: dict[str, type[AesGcmCrypto] | type[SecretBoxCrypto]] = {
    "aes-gcm": AesGcmCrypto,
    "aesgcm": AesGcmCrypto,
    "secretbox": SecretBoxCrypto,
    "sodium": SecretBoxCrypto,
}


def _driver_class(driver: str) -> type[AesGcmCrypto] | type[SecretBoxCrypto]:
    cls = _DRIVERS.get(driver.strip().lower())
    if cls is None:
        raise UnknownDriverError(driver, f"Unknown crypto driver: {driver!r}")
    return cls


def create_crypto(driver: str, key: bytes | str) -> ICryptoProvider | None:
    """Create a crypto driver.

    Args:
        driver: ``aes-gcm`` (alias ``aesgcm``) or ``secretbox`` (alias ``sodium``).
        key: Raw or base64-encoded key material.

    Returns:
        The driver, or None when crypto is not configured (empty driver or key).

    Raises:
        UnknownDriverError: If ``driver`` is not a known name.
        InvalidKeyError: If the key has the wrong length.
    """
    if not driver or not key:
        return None
    return _driver_class(driver)(key)


def generate_key(driver: str) -> str:
    """Generate a random base64-encoded key sized for ``driver``."""
    return random_key(_driver_class(driver).key_length)


__all__: list[str] = ["create_crypto", "generate_key"]
