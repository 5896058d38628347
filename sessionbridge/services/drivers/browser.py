"""Playwright-backed base class for site-specific automation drivers.

Handles the browser lifecycle, persisted site sessions (storage state) and
the pending-input handshake with the bridge. Subclasses implement the actual
site flow in ``_perform_login`` and ``op_<name>`` operation methods.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from ...core.clock import Clock, system_clock
from ...core.exceptions import DriverError
from ...utils.encryption import CredentialEncryption
from ..session.models import PendingInputKind
from .base import LoginResult, OperationResult

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/135.0.0.0 Safari/537.36"
)

# Resource types not needed for form automation
BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})


class BrowserDriver(ABC):
    """Base automation driver managing one Chromium context per session."""

    def __init__(
        self,
        username: str,
        phone: str,
        encryption: Optional[CredentialEncryption] = None,
        headless: bool = True,
        storage_dir: str = "sessions",
        input_timeout_seconds: float = 120.0,
        clock: Clock = system_clock,
    ):
        """
        Initialize browser driver.

        Args:
            username: Owner of the session
            phone: Phone number, encrypted when ``encryption`` is given
            encryption: Credential encryption for ``phone`` and the saved site session
            headless: Run Chromium headless
            storage_dir: Directory for persisted site sessions
            input_timeout_seconds: How long a prompt waits for user input
            clock: Time source for session statistics
        """
        self.username = username
        self._phone = phone
        self._encryption = encryption
        self.headless = headless
        self.storage_file = Path(storage_dir) / f"{username}.json"
        self.input_timeout = input_timeout_seconds
        self._clock = clock

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

        self._pending_type: Optional[PendingInputKind] = None
        self._pending_data: Any = None
        self._pending_future: Optional["asyncio.Future[str]"] = None

        self.session_active = False
        self.login_timestamp: Optional[datetime] = None
        self.last_activity: Optional[datetime] = None

    @property
    def phone(self) -> str:
        """Decrypted phone number."""
        if self._encryption is None:
            return self._phone
        return self._encryption.decrypt(self._phone)

    async def init(self) -> None:
        """Launch browser and create a context, restoring a saved site session if present."""
        if self.browser is not None:
            return

        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless,
                args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-blink-features=AutomationControlled",
                ],
            )

            context_options: Dict[str, Any] = {
                "viewport": {"width": 800, "height": 600},
                "user_agent": DEFAULT_USER_AGENT,
            }
            saved_state = self.load_session()
            if saved_state is not None:
                context_options["storage_state"] = saved_state
                logger.info(f"[DRIVER] Restoring saved site session for {self.username}")

            self.context = await self.browser.new_context(**context_options)
            await self.context.add_init_script(
                "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"
            )
            await self.context.route("**/*", self._route_request)
            self.page = await self.context.new_page()

            logger.info(f"[DRIVER] Browser started for {self.username}")
        except Exception:
            # Clean up partial resources on error
            await self._close_browser()
            raise

    async def _route_request(self, route: Any) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def login(self) -> LoginResult:
        """Run the site login flow, prompting for input through the bridge as needed."""
        try:
            await self.init()
            if self.page is None:
                raise DriverError("Browser page is not initialized", fatal=True)

            result = await self._perform_login(self.page)
        except asyncio.CancelledError:
            raise
        except DriverError as e:
            logger.error(f"[DRIVER] Login failed for {self.username}: {e.message}")
            return LoginResult(success=False, error=e.message, fatal=e.fatal)
        except Exception as e:
            logger.error(f"[DRIVER] Login error for {self.username}: {e}")
            return LoginResult(success=False, error=str(e))
        finally:
            self._clear_pending()

        if result.success:
            now = self._clock.now()
            self.session_active = True
            self.login_timestamp = now
            self.last_activity = now
            await self.save_session()
        return result

    @abstractmethod
    async def _perform_login(self, page: Page) -> LoginResult:
        """Site-specific login flow."""

    async def wait_for_user_input(
        self,
        kind: PendingInputKind,
        data: Any = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Publish a prompt and wait until the bridge submits a value.

        Raises:
            DriverError: If no value arrives before the timeout
        """
        loop = asyncio.get_running_loop()
        self._pending_future = loop.create_future()
        self._pending_type = kind
        self._pending_data = data
        logger.info(f"[DRIVER] Waiting for {kind.value} input for {self.username}")

        try:
            return await asyncio.wait_for(self._pending_future, timeout or self.input_timeout)
        except asyncio.TimeoutError as e:
            raise DriverError(f"Timed out waiting for {kind.value} input") from e
        finally:
            self._clear_pending()

    def _clear_pending(self) -> None:
        self._pending_type = None
        self._pending_data = None
        self._pending_future = None

    def get_pending_input_type(self) -> Optional[PendingInputKind]:
        return self._pending_type

    def get_pending_input_data(self) -> Any:
        return self._pending_data

    def submit_user_input(self, value: str) -> bool:
        """Resolve the current prompt; False if nothing is pending."""
        future = self._pending_future
        if future is None or future.done():
            return False
        future.set_result(value)
        # Back to "nothing pending" until the flow asks again
        self._pending_type = None
        self._pending_data = None
        return True

    def get_session_stats(self) -> Dict[str, Any]:
        lifetime = 0
        if self.login_timestamp is not None:
            lifetime = int((self._clock.now() - self.login_timestamp).total_seconds() // 60)
        return {
            "lifetimeMinutes": lifetime,
            "sessionActive": self.session_active,
            "loginTimestamp": self.login_timestamp.isoformat() if self.login_timestamp else None,
            "lastActivity": self.last_activity.isoformat() if self.last_activity else None,
        }

    async def save_session(self) -> bool:
        """
        Persist cookies and local storage so a later login can skip the prompts.

        The file is Fernet-encrypted when an encryption instance is configured.
        """
        if self.context is None:
            return False
        try:
            state = await self.context.storage_state()
            payload = json.dumps(state, ensure_ascii=False)
            if self._encryption is not None:
                payload = self._encryption.encrypt(payload)

            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
            self.storage_file.write_text(payload, encoding="utf-8")
            logger.debug(
                f"[DRIVER] Site session saved for {self.username}"
                f"{' (encrypted)' if self._encryption is not None else ''}"
            )
            return True
        except Exception as e:
            logger.warning(f"[DRIVER] Failed to save site session for {self.username}: {e}")
            return False

    def load_session(self) -> Optional[Dict[str, Any]]:
        """Read the saved site session; None if absent or unreadable."""
        if not self.storage_file.exists():
            return None
        try:
            payload = self.storage_file.read_text(encoding="utf-8")
            if self._encryption is not None:
                payload = self._encryption.decrypt(payload)
            state: Dict[str, Any] = json.loads(payload)
            return state
        except (OSError, ValueError) as e:
            logger.warning(
                f"[DRIVER] Ignoring unreadable saved site session for {self.username}: {e}"
            )
            return None

    async def execute(self, operation: str) -> OperationResult:
        """Dispatch a named operation to ``op_<operation>`` on the subclass."""
        handler: Optional[Callable[[], Awaitable[OperationResult]]] = getattr(
            self, f"op_{operation}", None
        )
        if handler is None:
            return OperationResult(success=False, error=f"Unsupported operation: {operation}")
        if not self.session_active:
            return OperationResult(success=False, error="Session is not authenticated")

        self.last_activity = self._clock.now()
        return await handler()

    async def close(self, delete_data: bool = False) -> None:
        """
        Release browser resources.

        An authenticated site session is saved first unless ``delete_data``
        asks for the persisted one to be removed.
        """
        future = self._pending_future
        if future is not None and not future.done():
            future.cancel()
        self._clear_pending()

        if self.session_active and not delete_data:
            await self.save_session()
        self.session_active = False

        await self._close_browser()

        if delete_data and self.storage_file.exists():
            self.storage_file.unlink()
            logger.info(f"[DRIVER] Deleted saved site session for {self.username}")

    async def _close_browser(self) -> None:
        if self.context:
            await self.context.close()
            self.context = None
            self.page = None

        if self.browser:
            await self.browser.close()
            self.browser = None

        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

        logger.debug(f"[DRIVER] Browser resources cleaned up for {self.username}")
