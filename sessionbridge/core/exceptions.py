"""Custom exception classes for SessionBridge."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SessionBridgeError(Exception):
    """Base exception for SessionBridge."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize SessionBridge error.

        Args:
            message: Error message
            recoverable: Whether the error is recoverable with retry
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ValidationError(SessionBridgeError):
    """Input validation failed (malformed time, out-of-range value, missing field)."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        self.field = field
        super().__init__(message, recoverable=False, details=details)


class CodeExtractionError(ValidationError):
    """No one-time code could be extracted from a notification message."""

    def __init__(self, source: str):
        super().__init__(
            f"Could not extract code from {source} message",
            field="message",
            details={"source": source},
        )


class NotFoundError(SessionBridgeError):
    """Requested entity does not exist."""

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, recoverable=False, details=details)


class SessionNotFoundError(NotFoundError):
    """Unknown session id."""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        super().__init__("Session not found", details={"session_id": session_id})


class AuthenticationError(SessionBridgeError):
    """Session exists but has not completed login."""

    def __init__(
        self,
        message: str = "Session is not authenticated",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable=True, details=details)


class DriverError(SessionBridgeError):
    """Underlying automation driver failed."""

    def __init__(
        self,
        message: str = "Automation driver error",
        fatal: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize driver error.

        Args:
            message: Error message
            fatal: Whether the driver can no longer be used (session must close)
            details: Additional error details
        """
        self.fatal = fatal
        super().__init__(message, recoverable=not fatal, details=details)


class ConfigurationError(SessionBridgeError):
    """Configuration error occurred."""

    def __init__(
        self,
        message: str = "Configuration error",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)

