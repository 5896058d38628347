"""Data models for the OTP bridge."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ...core.exceptions import ValidationError
from ..session.models import PendingInputKind

# Identifier used when a notification carries no username
ANY_IDENTIFIER = "*"


class CodeSource(Enum):
    """External system a one-time code was sent by."""

    SMS = "sms"
    SECONDARY_SMS = "secondary_sms"

    @property
    def input_kind(self) -> PendingInputKind:
        """The pending input kind a code from this source answers."""
        return _SOURCE_TO_KIND[self]

    @classmethod
    def for_kind(cls, kind: PendingInputKind) -> Optional["CodeSource"]:
        for source, source_kind in _SOURCE_TO_KIND.items():
            if source_kind is kind:
                return source
        return None

    @classmethod
    def parse(cls, value: Any) -> "CodeSource":
        """
        Parse a source name.

        Raises:
            ValidationError: For unknown sources
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as e:
            raise ValidationError(f"Unknown code source: {value}", field="source") from e


_SOURCE_TO_KIND: Dict[CodeSource, PendingInputKind] = {
    CodeSource.SMS: PendingInputKind.SMS,
    CodeSource.SECONDARY_SMS: PendingInputKind.SECONDARY_SMS,
}


def make_key(source: CodeSource, identifier: Optional[str] = None) -> str:
    """Queue key scoped by source, e.g. ``"sms:alice"`` or ``"sms:*"``."""
    return f"{source.value}:{identifier or ANY_IDENTIFIER}"


@dataclass
class PendingCodeEntry:
    """
    A code waiting for a session to ask for it.

    Attributes:
        key: Source-scoped identifier (see ``make_key``)
        code: The extracted one-time code
        received_at: Arrival timestamp (UTC)
        expires_at: Entry is dropped at or after this instant
        source: External source that produced the code
    """

    key: str
    code: str
    received_at: datetime
    expires_at: datetime
    source: Optional[CodeSource] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class NotificationResult:
    """Outcome of routing an external code notification."""

    code: str
    key: str
    delivered: bool = False
    queued: bool = False
    duplicate: bool = False
    ambiguous: bool = False
    session_id: Optional[str] = None
