"""Session registry for automation sessions.

Owns the set of live sessions, enforces one live session per username and
drives the authentication state machine. Compound updates are serialized per
session id and per username with ``KeyedLock``; unrelated sessions never wait
on each other.
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from loguru import logger

from ...core.clock import Clock, system_clock
from ...core.exceptions import SessionNotFoundError, ValidationError
from ...utils.keyed_lock import KeyedLock
from ...utils.masking import mask_session_id
from .models import PendingInputKind, Session, SessionState, can_transition

if TYPE_CHECKING:
    from ..drivers.base import AutomationDriver


class SessionRegistry:
    """Async-safe registry of automation sessions."""

    def __init__(
        self,
        clock: Clock = system_clock,
        idle_timeout: timedelta = timedelta(hours=6),
        max_sessions: Optional[int] = None,
    ):
        """
        Initialize session registry.

        Args:
            clock: Time source
            idle_timeout: Sessions idle longer than this are swept
            max_sessions: Optional cap on concurrent sessions
        """
        self._sessions: Dict[str, Session] = {}
        self._clock = clock
        self._idle_timeout = idle_timeout
        self._max_sessions = max_sessions
        self._locks = KeyedLock()

    @property
    def idle_timeout(self) -> timedelta:
        return self._idle_timeout

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    async def create_session(
        self, username: str, driver: "AutomationDriver", delete_data: bool = False
    ) -> str:
        """
        Register a new session, evicting any live session of the same user first.

        Args:
            username: Session owner
            driver: Driver handle owned by the new session
            delete_data: Also delete the evicted session's persisted site session

        Returns:
            Session ID

        Raises:
            ValidationError: If username or driver is missing
        """
        if not username:
            raise ValidationError("username is required", field="username")
        if driver is None:
            raise ValidationError("driver handle is required", field="driver")

        async with self._locks.hold(f"user:{username}"):
            existing_id = self.find_by_username(username)
            if existing_id:
                logger.info(
                    f"[SESSION] Conflict resolved: evicting session "
                    f"{mask_session_id(existing_id)} for user {username}"
                )
                await self._evict(existing_id, delete_data=delete_data)

            if self._max_sessions and len(self._sessions) >= self._max_sessions:
                oldest_id = self._pick_capacity_victim()
                if oldest_id:
                    logger.warning(
                        f"[SESSION] Max sessions ({self._max_sessions}) reached, "
                        f"evicting {mask_session_id(oldest_id)}"
                    )
                    await self._evict(oldest_id, delete_data=False)

            session_id = secrets.token_hex(32)
            now = self._clock.now()
            self._sessions[session_id] = Session(
                session_id=session_id,
                username=username,
                driver=driver,
                created_at=now,
                last_activity_at=now,
            )

        logger.info(
            f"[SESSION] Created session {mask_session_id(session_id)} for user {username} "
            f"({len(self._sessions)} active)"
        )
        return session_id

    def _pick_capacity_victim(self) -> Optional[str]:
        """Oldest unauthenticated session, else the oldest session overall."""
        candidates = [s for s in self._sessions.values() if not s.is_authenticated]
        if not candidates:
            candidates = list(self._sessions.values())
        if not candidates:
            return None
        return min(candidates, key=lambda s: s.created_at).session_id

    async def _evict(self, session_id: str, delete_data: bool) -> None:
        """Close the driver and remove the session under its own lock."""
        async with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if session is None:
                return
            await self._release(session, delete_data=delete_data)
            self._sessions.pop(session_id, None)

    def get_session(self, session_id: str) -> Optional[Session]:
        """Get session by ID."""
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> Session:
        """
        Get session by ID.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def touch(self, session_id: str) -> Optional[Session]:
        """Refresh last activity and return the session."""
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_activity_at = self._clock.now()
        return session

    def find_by_username(self, username: str) -> Optional[str]:
        """Find the live session of a user (authenticated or in progress)."""
        for session_id, session in self._sessions.items():
            if session.username == username and not session.is_closed:
                return session_id
        return None

    def list_sessions(self) -> List[Session]:
        """Snapshot of all sessions."""
        return list(self._sessions.values())

    def find_waiting_for(self, kind: PendingInputKind) -> List[Session]:
        """Sessions whose driver currently asks for ``kind``."""
        waiting = []
        for session in self.list_sessions():
            if session.is_closed:
                continue
            if self.refresh_pending_input(session) is kind:
                waiting.append(session)
        return waiting

    def session_count(self) -> int:
        return len(self._sessions)

    def get_session_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Public session info (without the driver handle)."""
        session = self._sessions.get(session_id)
        return session.to_public_dict() if session else None

    def update_metadata(self, session_id: str, **values: Any) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.metadata.update(values)
        logger.debug(f"[SESSION] Updated metadata for session {mask_session_id(session_id)}")
        return True

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, session: Session, target: SessionState) -> bool:
        if not can_transition(session.state, target):
            return False
        session.state = target
        return True

    def refresh_pending_input(self, session: Session) -> Optional[PendingInputKind]:
        """
        Read the driver's pending input kind and record it on the session.

        Moves the session to AWAITING_INPUT when the driver asks for something
        and the session is not yet authenticated.
        """
        if session.is_closed:
            session.pending_input_kind = None
            return None

        kind = PendingInputKind.parse(session.driver.get_pending_input_type())
        session.pending_input_kind = kind
        if kind is not None:
            self._transition(session, SessionState.AWAITING_INPUT)
        return kind

    async def mark_awaiting_input(self, session_id: str, kind: PendingInputKind) -> bool:
        """Record that the driver now asks for ``kind`` (ignored once authenticated)."""
        async with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if session is None or not self._transition(session, SessionState.AWAITING_INPUT):
                return False
            session.pending_input_kind = kind

        logger.info(
            f"[SESSION] Session {mask_session_id(session_id)} awaiting input: {kind.value}"
        )
        return True

    async def mark_authenticated(self, session_id: str) -> bool:
        """
        Mark a session as authenticated.

        Idempotent: an AUTHENTICATED or CLOSED session is left untouched.

        Returns:
            True if this call performed the transition
        """
        async with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if session is None or session.is_closed or session.is_authenticated:
                return False

            self._transition(session, SessionState.AUTHENTICATED)
            session.authenticated_at = self._clock.now()
            session.pending_input_kind = None

        logger.info(f"[SESSION] Session {mask_session_id(session_id)} marked as authenticated")
        return True

    async def mark_closed(self, session_id: str) -> bool:
        """Move a session to the terminal CLOSED state (entry stays registered)."""
        async with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if session is None or session.is_closed:
                return False
            self._transition(session, SessionState.CLOSED)
            session.pending_input_kind = None

        logger.info(f"[SESSION] Session {mask_session_id(session_id)} closed")
        return True

    # ------------------------------------------------------------------
    # Destruction
    # ------------------------------------------------------------------

    def delete_session(self, session_id: str) -> bool:
        """
        Remove a session from the registry.

        The driver is NOT released here; callers release it first so they can
        choose whether persisted site data is deleted as well.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(
            f"[SESSION] Deleting session {mask_session_id(session_id)} for user {session.username}"
        )
        return True

    async def close_session(self, session_id: str, delete_data: bool = False) -> bool:
        """
        Release the driver and delete the session (logout path).

        Returns:
            False if the session was already gone
        """
        async with self._locks.hold(f"session:{session_id}"):
            session = self._sessions.get(session_id)
            if session is None:
                return False
            await self._release(session, delete_data=delete_data)
            self.delete_session(session_id)
        return True

    async def _release(self, session: Session, delete_data: bool) -> None:
        """Abort in-flight work, close the driver and mark the session CLOSED."""
        task = session.login_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"[SESSION] Login task ended with error during close: {e}")

        self._transition(session, SessionState.CLOSED)
        session.pending_input_kind = None
        try:
            await session.driver.close(delete_data)
        except Exception as e:
            logger.error(
                f"[SESSION] Error closing driver for {mask_session_id(session.session_id)}: {e}"
            )

    async def cleanup_expired_sessions(self, now: Optional[datetime] = None) -> int:
        """
        Close and delete sessions idle longer than the idle timeout.

        A failure on one session is logged and the sweep continues.

        Returns:
            Number of sessions removed
        """
        now = now or self._clock.now()
        expired = [
            s.session_id
            for s in self.list_sessions()
            if now - s.last_activity_at > self._idle_timeout
        ]

        logger.info(f"[SESSION] Found {len(expired)} expired sessions")

        removed = 0
        for session_id in expired:
            try:
                async with self._locks.hold(f"session:{session_id}"):
                    session = self._sessions.get(session_id)
                    # Re-check under the lock: a poll may have refreshed it meanwhile
                    if session is None or now - session.last_activity_at <= self._idle_timeout:
                        continue
                    await self._release(session, delete_data=False)
                    self.delete_session(session_id)
                    removed += 1
            except Exception as e:
                logger.error(f"[SESSION] Failed to expire {mask_session_id(session_id)}: {e}")

        return removed

    async def close_all_sessions(self, timeout: float = 30.0) -> None:
        """Release every driver (bounded by ``timeout``) and clear the registry."""
        sessions = self.list_sessions()
        logger.info(f"[SESSION] Closing {len(sessions)} active sessions...")

        if sessions:
            try:
                await asyncio.wait_for(
                    asyncio.gather(
                        *(self._release(s, delete_data=False) for s in sessions),
                        return_exceptions=True,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"[SESSION] Closing sessions timed out after {timeout}s")

        self._sessions.clear()
        logger.info("[SESSION] All sessions closed")
