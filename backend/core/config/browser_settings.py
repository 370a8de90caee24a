# ------------------------------ IMPORTS ------------------------------
from playwright.async_api import async_playwright, Page, BrowserContext, Browser, Playwright
from typing import Optional, Dict, Any
import logging

from core.config.settings import settings, BrowserConfig
from core.exceptions import ResourceExhausted

logger = logging.getLogger(__name__)

# ------------------------------ BROWSER DEFAULTS ------------------------------
DEFAULT_VIEWPORT = {"width": 1366, "height": 768}

BROWSER_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]

ANTI_DETECTION_SCRIPT = (
    "Object.defineProperty(navigator, 'webdriver', { get: () => undefined });"
)

BLOCKED_RESOURCE_PATTERN = "**/*.{png,jpg,jpeg,gif,svg,css,woff,woff2}"

# ------------------------------ BROWSER ENGINE ------------------------------

class BrowserEngine:
    """Single shared Chromium process handing out one isolated context per tenant."""

    def __init__(self, config: BrowserConfig = None, browser: Optional[Browser] = None):
        self.config = config or settings.browser
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = browser

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch the shared browser if it is not running yet."""
        if self._browser is not None:
            return

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
            logger.info("Shared browser launched")

        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            await self.stop()
            raise ResourceExhausted(f"Failed to launch browser: {e}") from e

    async def new_context(self, storage_state: Optional[Dict[str, Any]] = None) -> BrowserContext:
        """Open an isolated context, optionally seeded with a saved storage state."""
        if self._browser is None:
            await self.start()

        try:
            return await self._browser.new_context(
                user_agent=self.config.user_agent,
                viewport=DEFAULT_VIEWPORT,
                storage_state=storage_state,
            )
        except Exception as e:
            logger.error(f"Failed to open browser context: {e}")
            raise ResourceExhausted(f"Failed to open browser context: {e}") from e

    async def new_page(self, context: BrowserContext) -> Page:
        """Open a page with the standard timeouts and resource blocking."""
        try:
            page = await context.new_page()
            page.set_default_timeout(self.config.default_timeout)
            page.set_default_navigation_timeout(self.config.navigation_timeout)
            await page.add_init_script(ANTI_DETECTION_SCRIPT)

            if self.config.block_resources:
                await page.route(BLOCKED_RESOURCE_PATTERN, lambda route: route.abort())

            return page
        except Exception as e:
            logger.error(f"Failed to open page: {e}")
            raise ResourceExhausted(f"Failed to open page: {e}") from e

    async def stop(self) -> None:
        """Close the shared browser and the Playwright driver. Safe to call twice."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None

        if browser:
            try:
                await browser.close()
                logger.info("Shared browser closed")
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")

        if playwright:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")

# ------------------------------ END OF FILE ------------------------------
