"""TTL-bounded store of pending one-time codes.

At most one live entry per key; a new arrival overwrites. The queue itself
does no locking: ``PendingInputBridge`` wraps every compound sequence in a
per-key lock.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

from loguru import logger

from ...core.clock import Clock, system_clock
from ...utils.masking import mask_code
from .models import CodeSource, PendingCodeEntry


class PendingCodeQueue:
    """Mapping from source-scoped key to the latest unconsumed code."""

    def __init__(self, clock: Clock = system_clock, default_ttl: timedelta = timedelta(minutes=5)):
        """
        Initialize the queue.

        Args:
            clock: Time source
            default_ttl: Lifetime of entries enqueued without an explicit TTL
        """
        self._entries: Dict[str, PendingCodeEntry] = {}
        self._clock = clock
        self._default_ttl = default_ttl

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def enqueue(
        self,
        key: str,
        code: str,
        ttl: Optional[timedelta] = None,
        source: Optional[CodeSource] = None,
    ) -> PendingCodeEntry:
        """Store ``code`` under ``key``, replacing any existing entry."""
        now = self._clock.now()
        entry = PendingCodeEntry(
            key=key,
            code=code,
            received_at=now,
            expires_at=now + (ttl if ttl is not None else self._default_ttl),
            source=source,
        )
        replaced = self._entries.get(key)
        self._entries[key] = entry

        if replaced is not None and not replaced.is_expired(now):
            logger.info(f"[OTP] Replaced pending code for {key}: {mask_code(code)}")
        else:
            logger.info(f"[OTP] Queued code for {key}: {mask_code(code)}")
        return entry

    def restore(self, entry: PendingCodeEntry) -> None:
        """Put back an entry that was taken but could not be delivered."""
        if entry.key not in self._entries and not entry.is_expired(self._clock.now()):
            self._entries[entry.key] = entry

    def peek(self, key: str) -> Optional[PendingCodeEntry]:
        """
        Return the live entry for ``key`` without consuming it.

        An expired entry is removed on sight.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock.now()):
            del self._entries[key]
            logger.debug(f"[OTP] Dropped expired code for {key}")
            return None
        return entry

    def take(self, key: str) -> Optional[PendingCodeEntry]:
        """
        Remove and return the entry for ``key``.

        An expired entry is removed as well, but not returned.
        """
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        if entry.is_expired(self._clock.now()):
            logger.debug(f"[OTP] Dropped expired code for {key}")
            return None
        return entry

    def discard(self, key: str, code: Optional[str] = None) -> bool:
        """Remove the entry for ``key`` (only if it holds ``code``, when given)."""
        entry = self._entries.get(key)
        if entry is None or (code is not None and entry.code != code):
            return False
        del self._entries[key]
        return True

    def sweep_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock.now()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"[OTP] Total expired codes cleaned: {len(expired)}")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.peek(key) is not None

    def health_check(self) -> Dict[str, Any]:
        """
        Return queue health status.

        Returns:
            Dictionary with queue metrics
        """
        return {
            "status": "healthy",
            "queue_size": len(self._entries),
            "ttl_seconds": int(self._default_ttl.total_seconds()),
        }
