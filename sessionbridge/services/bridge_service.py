"""Top-level service wiring sessions, the OTP bridge and the scheduler.

The HTTP layer talks only to ``BridgeService``; it owns the registry, the
pending-input bridge, the recurring-task runner and the background timers,
and drives login tasks for new sessions.
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from ..core.clock import Clock, RandomSource, system_clock, system_random
from ..core.config.settings import BridgeSettings, get_settings
from ..core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DriverError,
    ValidationError,
)
from ..utils.encryption import CredentialEncryption
from ..utils.masking import mask_phone, mask_session_id
from .drivers.base import LoginResult, OperationResult
from .drivers.factory import DriverFactory, load_driver_factory
from .otp.bridge import PendingInputBridge
from .otp.models import CodeSource, NotificationResult
from .otp.pattern_matcher import build_matchers
from .otp.queue import PendingCodeQueue
from .scheduling.recurring import RecurringTask, RecurringTaskRunner
from .session.models import Session
from .session.registry import SessionRegistry
from .timers import PeriodicTimer


class BridgeService:
    """Facade over all core components, with start/stop lifecycle."""

    def __init__(
        self,
        settings: Optional[BridgeSettings] = None,
        driver_factory: Optional[DriverFactory] = None,
        clock: Clock = system_clock,
        rng: RandomSource = system_random,
    ):
        """
        Initialize the service.

        Args:
            settings: Application settings (global settings if omitted)
            driver_factory: Driver factory; when omitted it is loaded from
                ``settings.driver_factory`` on first login
            clock: Time source shared by all components
            rng: Random source for schedule jitter
        """
        self.settings = settings or get_settings()
        self._driver_factory = driver_factory
        self._clock = clock

        self.registry = SessionRegistry(
            clock=clock,
            idle_timeout=timedelta(hours=self.settings.session_idle_hours),
            max_sessions=self.settings.max_sessions,
        )
        queue = PendingCodeQueue(
            clock=clock, default_ttl=timedelta(seconds=self.settings.otp_ttl_seconds)
        )
        matchers = build_matchers({CodeSource.SMS: self.settings.otp_extra_patterns})
        self.bridge = PendingInputBridge(self.registry, queue, matchers, clock=clock)
        self.scheduler = RecurringTaskRunner(self.registry, clock=clock, rng=rng)

        self._encryption: Optional[CredentialEncryption] = CredentialEncryption.from_settings(
            self.settings
        )

        self.timers: List[PeriodicTimer] = [
            PeriodicTimer(
                "session-sweep",
                self.settings.session_sweep_interval_seconds,
                self.registry.cleanup_expired_sessions,
            ),
            PeriodicTimer(
                "otp-sweep",
                self.settings.otp_sweep_interval_seconds,
                self.bridge.sweep_expired_codes,
            ),
            PeriodicTimer(
                "scheduler-tick",
                self.settings.scheduler_tick_seconds,
                self.scheduler.tick,
            ),
        ]
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start background timers (requires a running event loop)."""
        if self._started:
            return
        for timer in self.timers:
            timer.start()
        self._started = True
        logger.info("Bridge service started")

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop timers first, then release every session within ``timeout``."""
        timeout = timeout if timeout is not None else self.settings.shutdown_timeout_seconds
        logger.info("Bridge service shutting down...")

        for timer in self.timers:
            await timer.stop()
        self._started = False

        await self.registry.close_all_sessions(timeout=timeout)
        logger.info("Bridge service stopped")

    def get_driver_factory(self) -> DriverFactory:
        """
        Resolve the driver factory.

        Raises:
            ConfigurationError: If no factory is configured
        """
        if self._driver_factory is None:
            if not self.settings.driver_factory:
                raise ConfigurationError("No automation driver configured (DRIVER_FACTORY)")
            self._driver_factory = load_driver_factory(self.settings.driver_factory)
        return self._driver_factory

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def start_login(self, username: str, phone: str, delete_data: bool = False) -> str:
        """
        Create a session and start the driver login in the background.

        Args:
            username: Session owner
            phone: Phone number handed to the driver
            delete_data: Delete the persisted site session of a replaced session

        Returns:
            Session ID (authentication continues asynchronously)

        Raises:
            ValidationError: If username or phone is missing
            ConfigurationError: If no driver factory is configured
        """
        if not username:
            raise ValidationError("username is required", field="username")
        if not phone:
            raise ValidationError("phone is required", field="phone")

        factory = self.get_driver_factory()
        stored_phone = self._encryption.encrypt(phone) if self._encryption else phone
        driver = factory(
            username=username,
            phone=stored_phone,
            settings=self.settings,
            encryption=self._encryption,
        )

        session_id = await self.registry.create_session(
            username, driver, delete_data=delete_data
        )
        session = self.registry.require_session(session_id)
        session.login_task = asyncio.create_task(
            self._run_login(session_id), name=f"login:{mask_session_id(session_id)}"
        )

        logger.info(
            f"[AUTH] Login started for user {username} (phone {mask_phone(phone)}), "
            f"session {mask_session_id(session_id)}"
        )
        return session_id

    async def _run_login(self, session_id: str) -> LoginResult:
        """Drive ``init`` + ``login`` and apply the result to the state machine."""
        session = self.registry.get_session(session_id)
        if session is None:
            return LoginResult(success=False, error="Session not found")

        try:
            await session.driver.init()
            result = await session.driver.login()
        except asyncio.CancelledError:
            logger.info(f"[AUTH] Login cancelled for session {mask_session_id(session_id)}")
            raise
        except DriverError as e:
            result = LoginResult(success=False, error=e.message, fatal=e.fatal)
        except Exception as e:
            logger.exception(f"[AUTH] Unexpected login error: {e}")
            result = LoginResult(success=False, error=str(e))

        if result.success:
            await self.registry.mark_authenticated(session_id)
            logger.info(f"[AUTH] Login completed for user {session.username}")
            return result

        logger.warning(f"[AUTH] Login failed for user {session.username}: {result.error}")
        self.registry.update_metadata(session_id, loginError=result.error)
        if result.fatal:
            await self.registry.close_session(session_id)
        return result

    def _lookup(self, session_id: Optional[str]) -> Session:
        if not session_id:
            raise ValidationError("sessionId is required", field="sessionId")
        session = self.registry.require_session(session_id)
        self.registry.touch(session_id)
        return session

    async def get_pending_input(self, session_id: Optional[str]) -> Dict[str, Any]:
        """Poll a session; a queued code is delivered first when it is waiting for one."""
        session = self._lookup(session_id)
        await self.bridge.resolve_pending_input(session)

        kind = self.registry.refresh_pending_input(session)
        return {
            "pendingType": kind.value if kind else None,
            "pendingData": session.driver.get_pending_input_data() if kind else None,
            "authenticated": session.is_authenticated,
        }

    async def submit_input(self, session_id: Optional[str], value: Optional[str]) -> None:
        """
        Forward user input to the driver.

        Raises:
            ValidationError: If the value is empty or no input is expected
            SessionNotFoundError: For unknown sessions
        """
        self._lookup(session_id)
        if not value:
            raise ValidationError("value is required", field="value")
        if not await self.bridge.submit_user_input(session_id, value):
            raise ValidationError("No input is currently expected")

    async def notify_code(
        self, message: str, username: Optional[str] = None, source: str = "sms"
    ) -> NotificationResult:
        if not message:
            raise ValidationError("message is required", field="message")
        return await self.bridge.route_notification(message, username=username, source=source)

    async def logout(self, session_id: Optional[str], delete_data: bool = False) -> bool:
        """Release the driver and delete the session; False if it was already gone."""
        if not session_id:
            return False
        closed = await self.registry.close_session(session_id, delete_data=delete_data)
        if closed:
            logger.info(f"[AUTH] Logged out session {mask_session_id(session_id)}")
        return closed

    # ------------------------------------------------------------------
    # Sessions and schedules
    # ------------------------------------------------------------------

    async def run_operation(
        self, session_id: Optional[str], operation: Optional[str]
    ) -> OperationResult:
        """
        Run a named driver operation on demand.

        Raises:
            ValidationError: If the operation name is missing
            SessionNotFoundError: For unknown sessions
            AuthenticationError: If the session has not completed login
            DriverError: If the driver fails; a fatal failure closes the session
        """
        session = self._lookup(session_id)
        if not operation:
            raise ValidationError("operation is required", field="operation")
        if not session.is_authenticated:
            raise AuthenticationError()

        try:
            result = await session.driver.execute(operation)
        except DriverError as e:
            if e.fatal:
                logger.error(
                    f"[SESSION] Fatal driver error during '{operation}' for user "
                    f"{session.username}, closing session"
                )
                await self.registry.close_session(session.session_id)
            raise

        if result.success:
            logger.info(f"[SESSION] '{operation}' completed for user {session.username}")
        else:
            logger.warning(
                f"[SESSION] '{operation}' failed for user {session.username}: {result.error}"
            )
        return result

    def get_session_stats(self, session_id: Optional[str]) -> Dict[str, Any]:
        session = self._lookup(session_id)
        return session.driver.get_session_stats()

    def get_session_info(self, session_id: Optional[str]) -> Dict[str, Any]:
        session = self._lookup(session_id)
        return {**session.to_public_dict(), "metadata": dict(session.metadata)}

    def set_tasks(
        self, session_id: Optional[str], tasks: Iterable[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Replace the recurring tasks of the session's user."""
        session = self._lookup(session_id)
        parsed = [
            RecurringTask(
                name=t["name"],
                operation=t["operation"],
                target_local_time=t["target_local_time"],
                timezone=t.get("timezone") or self.settings.default_timezone,
                jitter_min=(
                    t["jitter_min"]
                    if t.get("jitter_min") is not None
                    else self.settings.jitter_min_minutes
                ),
                jitter_max=(
                    t["jitter_max"]
                    if t.get("jitter_max") is not None
                    else self.settings.jitter_max_minutes
                ),
            )
            for t in tasks
        ]
        self.scheduler.set_tasks(session.username, parsed)
        return self.scheduler.next_runs(session.username)

    def list_tasks(self, session_id: Optional[str]) -> List[Dict[str, Any]]:
        session = self._lookup(session_id)
        return self.scheduler.next_runs(session.username)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        """Per-session lifetime plus queue and timer status."""
        sessions = []
        for session in self.registry.list_sessions():
            try:
                lifetime = session.driver.get_session_stats().get("lifetimeMinutes", 0)
            except Exception as e:
                logger.warning(
                    f"[SESSION] Stats unavailable for {mask_session_id(session.session_id)}: {e}"
                )
                lifetime = None
            sessions.append(
                {
                    "sessionId": mask_session_id(session.session_id),
                    "username": session.username,
                    "state": session.state.value,
                    "lifetimeMinutes": lifetime,
                }
            )

        return {
            "activeSessions": len(sessions),
            "sessions": sessions,
            "otpQueue": self.bridge.queue.health_check(),
            "timers": {t.name: {"started": t.is_started, "runs": t.runs} for t in self.timers},
        }
