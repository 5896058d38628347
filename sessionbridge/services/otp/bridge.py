"""Pending-input bridge.

Reconciles one-time codes arriving out of band (SMS forwarders, webhooks)
with sessions whose driver is waiting for input, and carries direct user
submissions to the driver.

Delivery discipline: every compound "look up, consume, submit" sequence runs
inside the per-key lock ``otp:<key>``. When both the fallback key and a
username key are needed, the fallback lock is always taken first. A code that
was just delivered is remembered for the queue TTL so that a re-notification
of the same message is recognised as a duplicate and never reaches a driver a
second time.
"""

import inspect
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ...core.clock import Clock, system_clock
from ...core.exceptions import CodeExtractionError
from ...utils.keyed_lock import KeyedLock
from ...utils.masking import mask_code, mask_session_id
from ..session.models import PendingInputKind, Session
from ..session.registry import SessionRegistry
from .models import CodeSource, NotificationResult, PendingCodeEntry, make_key
from .pattern_matcher import OTPPatternMatcher, build_matchers
from .queue import PendingCodeQueue


class PendingInputBridge:
    """Routes codes between notifications, the queue and waiting sessions."""

    def __init__(
        self,
        registry: SessionRegistry,
        queue: Optional[PendingCodeQueue] = None,
        matchers: Optional[Dict[CodeSource, OTPPatternMatcher]] = None,
        clock: Clock = system_clock,
    ):
        """
        Initialize the bridge.

        Args:
            registry: Session registry to look up waiting sessions
            queue: Code queue (a default 5 minute TTL queue if omitted)
            matchers: Code extractor per source
            clock: Time source
        """
        self._registry = registry
        self._clock = clock
        self._queue = queue if queue is not None else PendingCodeQueue(clock=clock)
        self._matchers = matchers if matchers is not None else build_matchers()
        self._locks = KeyedLock()
        # "<source>:<code>" -> (username, forget_at)
        self._recent_deliveries: Dict[str, Tuple[str, datetime]] = {}

    @property
    def queue(self) -> PendingCodeQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Direct submission
    # ------------------------------------------------------------------

    async def submit_user_input(self, session_id: str, value: str) -> bool:
        """
        Forward a user-entered value to the session's driver.

        Raises:
            SessionNotFoundError: If the session does not exist

        Returns:
            False if the driver is not waiting for any input
        """
        session = self._registry.require_session(session_id)
        return await self._submit(session, value)

    async def _submit(self, session: Session, value: str) -> bool:
        if session.is_closed:
            return False
        kind = self._registry.refresh_pending_input(session)
        if kind is None:
            logger.debug(
                f"[AUTH] No pending input for session {mask_session_id(session.session_id)}"
            )
            return False

        accepted = session.driver.submit_user_input(value)
        if inspect.isawaitable(accepted):
            accepted = await accepted

        if accepted:
            logger.info(
                f"[AUTH] {kind.value} input submitted to session "
                f"{mask_session_id(session.session_id)}"
            )
            session.pending_input_kind = None
        return bool(accepted)

    # ------------------------------------------------------------------
    # Queue access
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        key: str,
        code: str,
        ttl: Optional[timedelta] = None,
        source: Optional[CodeSource] = None,
    ) -> PendingCodeEntry:
        """Store ``code`` under ``key`` (overwriting) inside the key's lock."""
        async with self._locks.hold(f"otp:{key}"):
            return self._queue.enqueue(key, code, ttl=ttl, source=source)

    @staticmethod
    def derive_key(session: Session, kind: PendingInputKind) -> Optional[str]:
        """Queue key a session waiting for ``kind`` reads from."""
        source = CodeSource.for_kind(kind)
        if source is None:
            return None
        return make_key(source, session.username)

    async def resolve_pending_input(self, session: Session) -> bool:
        """
        Deliver a queued code to a session waiting for a passcode.

        The session's own key is tried first, then the source's fallback key.

        Returns:
            True if a code was delivered
        """
        kind = self._registry.refresh_pending_input(session)
        if kind is None or not kind.is_passcode:
            return False

        own_key = self.derive_key(session, kind)
        fallback_key = make_key(CodeSource.for_kind(kind))

        async with self._locks.hold(f"otp:{own_key}"):
            if await self._consume_and_submit(session, own_key, kind):
                return True

        async with self._locks.hold(f"otp:{fallback_key}"):
            async with self._locks.hold(f"otp:{own_key}"):
                return await self._consume_and_submit(session, fallback_key, kind)

    async def _consume_and_submit(
        self, session: Session, key: str, kind: PendingInputKind
    ) -> bool:
        # Caller holds the lock for ``key``
        if self._queue.peek(key) is None:
            return False
        if self._registry.refresh_pending_input(session) is not kind:
            return False

        entry = self._queue.take(key)
        if entry is None:
            return False

        if await self._submit(session, entry.code):
            self._remember_delivery(entry.source, entry.code, session.username)
            logger.info(
                f"[OTP] Auto-resolved {kind.value} for session "
                f"{mask_session_id(session.session_id)} from {key}: {mask_code(entry.code)}"
            )
            return True

        # Driver refused: keep the code for the next poll
        self._queue.restore(entry)
        return False

    # ------------------------------------------------------------------
    # External notifications
    # ------------------------------------------------------------------

    def extract_code(self, message: str, source: CodeSource) -> str:
        """
        Extract a code with the source's extractor.

        Raises:
            CodeExtractionError: If no code is found
        """
        matcher = self._matchers.get(source)
        code = matcher.extract_otp(message) if matcher else None
        if not code:
            raise CodeExtractionError(source.value)
        return code

    async def route_notification(
        self,
        message: str,
        username: Optional[str] = None,
        source: str = "sms",
    ) -> NotificationResult:
        """
        Route a free-text notification carrying a one-time code.

        With ``username`` the code goes to that user's session if it is
        waiting, otherwise it is queued under the user's key. Without it, a
        waiting session is searched for; when several are waiting the first in
        iteration order receives the code and the result is flagged
        ``ambiguous`` (best effort, no ordering guarantee).

        Raises:
            ValidationError: For an unknown source
            CodeExtractionError: If the message carries no code
        """
        code_source = CodeSource.parse(source)
        code = self.extract_code(message, code_source)
        kind = code_source.input_kind
        fallback_key = make_key(code_source)

        logger.info(
            f"[OTP] Notification received ({code_source.value}"
            f"{', user ' + username if username else ''}): {mask_code(code)}"
        )

        async with self._locks.hold(f"otp:{fallback_key}"):
            if username:
                return await self._route_addressed(code, code_source, kind, username)
            return await self._route_unaddressed(code, code_source, kind)

    async def _route_addressed(
        self, code: str, source: CodeSource, kind: PendingInputKind, username: str
    ) -> NotificationResult:
        key = make_key(source, username)
        async with self._locks.hold(f"otp:{key}"):
            if self._was_delivered(source, code, username):
                return self._duplicate(code, key)

            session_id = self._registry.find_by_username(username)
            session = self._registry.get_session(session_id) if session_id else None
            if session is not None:
                result = await self._deliver_direct(session, code, source, kind, key)
                if result is not None:
                    return result

            self._queue.enqueue(key, code, source=source)
            return NotificationResult(code=code, key=key, queued=True)

    async def _route_unaddressed(
        self, code: str, source: CodeSource, kind: PendingInputKind
    ) -> NotificationResult:
        fallback_key = make_key(source)
        if self._was_delivered(source, code):
            return self._duplicate(code, fallback_key)

        waiting = self._registry.find_waiting_for(kind)
        ambiguous = len(waiting) > 1
        if ambiguous:
            logger.warning(
                f"[OTP] Ambiguous match: {len(waiting)} sessions waiting for {kind.value}, "
                f"delivering to the first (best effort)"
            )

        for session in waiting:
            key = make_key(source, session.username)
            async with self._locks.hold(f"otp:{key}"):
                result = await self._deliver_direct(session, code, source, kind, key)
            if result is not None:
                result.ambiguous = ambiguous
                return result

        self._queue.enqueue(fallback_key, code, source=source)
        return NotificationResult(code=code, key=fallback_key, queued=True, ambiguous=ambiguous)

    async def _deliver_direct(
        self,
        session: Session,
        code: str,
        source: CodeSource,
        kind: PendingInputKind,
        key: str,
    ) -> Optional[NotificationResult]:
        # Caller holds the locks for ``key`` and the source's fallback key
        if self._registry.refresh_pending_input(session) is not kind:
            return None
        if not await self._submit(session, code):
            return None

        # Same message queued earlier must not be delivered again later
        self._queue.discard(key, code)
        self._queue.discard(make_key(source), code)
        self._remember_delivery(source, code, session.username)

        logger.info(
            f"[OTP] Delivered {kind.value} to session "
            f"{mask_session_id(session.session_id)}: {mask_code(code)}"
        )
        return NotificationResult(
            code=code, key=key, delivered=True, session_id=session.session_id
        )

    def _duplicate(self, code: str, key: str) -> NotificationResult:
        logger.info(f"[OTP] Ignoring re-notification of delivered code {mask_code(code)}")
        return NotificationResult(code=code, key=key, duplicate=True)

    # ------------------------------------------------------------------
    # Delivery memory
    # ------------------------------------------------------------------

    def _remember_delivery(
        self, source: Optional[CodeSource], code: str, username: str
    ) -> None:
        if source is None:
            return
        forget_at = self._clock.now() + self._queue.default_ttl
        self._recent_deliveries[f"{source.value}:{code}"] = (username, forget_at)

    def _was_delivered(
        self, source: CodeSource, code: str, username: Optional[str] = None
    ) -> bool:
        record = self._recent_deliveries.get(f"{source.value}:{code}")
        if record is None:
            return False
        delivered_to, forget_at = record
        if self._clock.now() >= forget_at:
            del self._recent_deliveries[f"{source.value}:{code}"]
            return False
        return username is None or delivered_to == username

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired_codes(self) -> int:
        """Drop expired queue entries and stale delivery records."""
        now = self._clock.now()
        stale: List[str] = [
            k for k, (_, forget_at) in self._recent_deliveries.items() if now >= forget_at
        ]
        for k in stale:
            del self._recent_deliveries[k]
        return self._queue.sweep_expired()
