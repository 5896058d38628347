"""Utility helpers."""

from .encryption import CredentialEncryption
from .keyed_lock import KeyedLock
from .masking import mask_code, mask_phone, mask_session_id

__all__ = ["CredentialEncryption", "KeyedLock", "mask_code", "mask_phone", "mask_session_id"]
