"""Utility functions for masking sensitive data in logs and outputs."""

from typing import Optional


def mask_code(code: Optional[str]) -> str:
    """
    Mask a one-time code for logging, keeping the first two characters.

    Examples:
        >>> mask_code("123456")
        '12****'
        >>> mask_code("7")
        '****'
    """
    if not code or len(code) <= 2:
        return "****"
    return f"{code[:2]}{'*' * (len(code) - 2)}"


def mask_phone(phone: Optional[str]) -> str:
    """
    Mask phone number for logging (show only last 3 digits).

    Examples:
        >>> mask_phone("+79991234567")
        '***567'
    """
    if not phone:
        return "***"
    return f"***{phone[-3:]}" if len(phone) > 3 else "***"


def mask_session_id(session_id: Optional[str]) -> str:
    """Shorten a session id to its first 8 characters for log lines."""
    if not session_id:
        return "<none>"
    return f"{session_id[:8]}..." if len(session_id) > 8 else session_id
