"""Credential encryption using Fernet symmetric encryption.

Phone numbers handed to automation drivers are kept encrypted in memory;
drivers decrypt them only when filling a form. Previous keys are accepted for
decryption so ``ENCRYPTION_KEY`` can be rotated without invalidating live
sessions.
"""

import hashlib
from typing import TYPE_CHECKING, List, Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from loguru import logger

if TYPE_CHECKING:
    from ..core.config.settings import BridgeSettings


class CredentialEncryption:
    """Fernet cipher for credentials, with decrypt-only previous keys."""

    def __init__(self, key: str, previous_keys: Sequence[str] = ()):
        """
        Args:
            key: Base64-encoded Fernet key used for encryption
            previous_keys: Retired keys still accepted when decrypting

        Raises:
            ValueError: If ``key`` is empty or not a valid Fernet key
        """
        if not key:
            raise ValueError("No encryption key configured (ENCRYPTION_KEY)")
        try:
            primary = Fernet(key.encode())
        except ValueError as e:
            raise ValueError(f"Invalid ENCRYPTION_KEY: {e}") from e

        retired: List[Fernet] = []
        for old_key in previous_keys:
            try:
                retired.append(Fernet(old_key.encode()))
            except ValueError as e:
                logger.warning(f"Ignoring invalid previous encryption key: {e}")

        self._cipher = MultiFernet([primary, *retired])
        self.fingerprint = hashlib.sha256(key.encode()).hexdigest()[:16]
        logger.debug(
            f"Credential encryption ready (key {self.fingerprint}, "
            f"{len(retired)} previous key(s))"
        )

    @classmethod
    def from_settings(cls, settings: "BridgeSettings") -> Optional["CredentialEncryption"]:
        """Build from ``ENCRYPTION_KEY``/``ENCRYPTION_KEY_OLD``; None when no key is set."""
        if settings.encryption_key is None:
            return None
        previous = []
        if settings.encryption_key_old is not None:
            previous.append(settings.encryption_key_old.get_secret_value())
        return cls(settings.encryption_key.get_secret_value(), previous)

    def encrypt(self, value: str) -> str:
        return self._cipher.encrypt(value.encode()).decode()

    def decrypt(self, token: str) -> str:
        """
        Raises:
            ValueError: If no known key can decrypt ``token``
        """
        try:
            return self._cipher.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Failed to decrypt credential: invalid key or corrupted data") from e

    def rotate(self, token: str) -> str:
        """Re-encrypt a token produced with a previous key under the current key."""
        try:
            return self._cipher.rotate(token.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Cannot rotate credential: invalid key or corrupted data") from e
