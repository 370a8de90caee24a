# ------------------------------ IMPORTS ------------------------------
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

from playwright.async_api import Page, BrowserContext

from core.config.settings import settings, WorkflowConfig
from core.security.session import is_login_location, clear_auth_state
from .helpers import resolve, wait_visible, is_visible_within, fill, click, wait_until
from .selectors import Locators, SiteUrls, DEFAULT_LOCATORS, DEFAULT_URLS

logger = logging.getLogger(__name__)

# ------------------------------ STATES ------------------------------

class LoginState(Enum):
    ALREADY_AUTHENTICATED = "already_authenticated"
    ATTEMPTING_CREDENTIALS = "attempting_credentials"
    SUCCEEDED = "succeeded"
    INVALID_CREDENTIALS = "invalid_credentials"
    TRANSIENT_FAILURE = "transient_failure"
    EXHAUSTED_RETRIES = "exhausted_retries"

SUCCESS_STATES = (LoginState.ALREADY_AUTHENTICATED, LoginState.SUCCEEDED)

# Per-attempt results
_NAVIGATED = "navigated"
_REJECTED = "rejected"

@dataclass
class LoginOutcome:
    state: LoginState
    message: str
    url: Optional[str] = None
    attempts: int = 0

    @property
    def success(self) -> bool:
        return self.state in SUCCESS_STATES

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "message": self.message, "state": self.state.value}
        if self.url:
            data["url"] = self.url
        return data

# ------------------------------ LOGIN STATE MACHINE ------------------------------

class LoginStateMachine:
    """Drives the portal login form with bounded retries and classified failures."""

    def __init__(
        self,
        page: Page,
        locators: Locators = DEFAULT_LOCATORS,
        urls: SiteUrls = DEFAULT_URLS,
        config: WorkflowConfig = None,
        session_id: str = "",
    ):
        self.page = page
        self.locators = locators
        self.urls = urls
        self.config = config or settings.workflow
        self.session_id = session_id
        self.state: Optional[LoginState] = None

    def _finish(self, state: LoginState, message: str, attempts: int = 0, url: Optional[str] = None) -> LoginOutcome:
        self.state = state
        logger.info(f"[{self.session_id}] Login finished: {state.value} after {attempts} attempt(s)")
        return LoginOutcome(state=state, message=message, url=url, attempts=attempts)

    async def run(self, identifier: str, secret: str, retries: Optional[int] = None) -> LoginOutcome:
        """Log in unless the page is already past the login view."""
        retries = self.config.login_retries if retries is None else retries
        if retries < 1:
            raise ValueError("retries must be at least 1")

        if not is_login_location(self.page.url, self.urls.login_marker):
            return self._finish(LoginState.ALREADY_AUTHENTICATED, "Already logged in", url=self.page.url)

        self.state = LoginState.ATTEMPTING_CREDENTIALS
        last_error: Optional[str] = None
        last_result: Optional[str] = None

        for attempt in range(1, retries + 1):
            logger.info(f"[{self.session_id}] Attempting login (Attempt {attempt}/{retries})")
            try:
                last_result = await self._attempt(identifier, secret, attempt)
                last_error = None
            except Exception as e:
                last_result = None
                last_error = str(e) or e.__class__.__name__
                logger.warning(f"[{self.session_id}] Login attempt {attempt} failed: {last_error}")

            if last_result == _NAVIGATED:
                return self._finish(LoginState.SUCCEEDED, "Login successful", attempt, url=self.page.url)

            if last_result == _REJECTED:
                logger.warning(f"[{self.session_id}] Site rejected the credentials")

            if attempt < retries:
                await asyncio.sleep(self.config.login_retry_delay / 1000)

        if last_result == _REJECTED:
            return self._finish(LoginState.INVALID_CREDENTIALS, "Invalid credentials", retries)
        if last_error:
            return self._finish(LoginState.TRANSIENT_FAILURE, f"Login failed: {last_error}", retries)
        return self._finish(
            LoginState.EXHAUSTED_RETRIES,
            f"Login failed: still on the login page after {retries} attempt(s)",
            retries,
        )

    async def _attempt(self, identifier: str, secret: str, attempt: int) -> Optional[str]:
        """Submit the form once and report whether it navigated, was rejected, or neither."""
        page = self.page
        loc = self.locators

        if attempt > 1:
            await page.reload(wait_until="domcontentloaded", timeout=self.config.page_load_timeout)

        await wait_visible(page, loc.login_form, self.config.step_timeout)
        await fill(page, loc.login_identifier, identifier)
        await fill(page, loc.login_secret, secret)

        if await is_visible_within(page, loc.login_submit, self.config.quick_check_timeout):
            await click(page, loc.login_submit)
        else:
            await page.keyboard.press("Enter")

        result: Dict[str, str] = {}

        async def settled() -> bool:
            if not is_login_location(page.url, self.urls.login_marker):
                result["value"] = _NAVIGATED
                return True
            if await resolve(page, loc.login_error).is_visible():
                result["value"] = _REJECTED
                return True
            return False

        await wait_until(settled, self.config.login_submit_timeout, self.config.poll_interval)
        return result.get("value")

# ------------------------------ LOGOUT ------------------------------

async def perform_logout(page: Page, context: BrowserContext, urls: SiteUrls = DEFAULT_URLS, timeout: Optional[int] = None) -> None:
    """Forget the portal session and return to the login page."""
    await clear_auth_state(context, page)
    await page.goto(urls.login, wait_until="domcontentloaded", timeout=timeout or settings.workflow.page_load_timeout)

# ------------------------------ END OF FILE ------------------------------
