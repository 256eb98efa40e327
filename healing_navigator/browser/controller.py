"""
Playwright Browser Controller for the Self-Healing Navigator.
Implements the automation surface on top of an async Playwright page.
"""

import asyncio
from typing import Optional, Any, Callable

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeout,
    Error as PlaywrightError,
)

from config.settings import settings
from healing_navigator.browser.surface import AutomationSurface
from healing_navigator.utils.logger import agent_logger as logger


class BrowserController(AutomationSurface):
    """
    Async Playwright browser controller.
    Action failures propagate as Playwright exceptions so the executor can classify them.
    """

    def __init__(
        self,
        headless: bool = None,
        viewport_width: int = None,
        viewport_height: int = None,
        timeout_ms: int = None,
        slow_mo: int = None,
        user_agent: str = None
    ):
        # Use settings defaults if not specified
        self.headless = headless if headless is not None else settings.browser.headless
        self.viewport_width = viewport_width or settings.browser.viewport_width
        self.viewport_height = viewport_height or settings.browser.viewport_height
        self.timeout_ms = timeout_ms or settings.browser.timeout_ms
        self.element_timeout_ms = settings.browser.element_timeout_ms
        self.slow_mo = slow_mo if slow_mo is not None else settings.browser.slow_mo
        self.user_agent = user_agent or settings.browser.user_agent

        # Playwright objects
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

        self._is_initialized = False

    async def initialize(self):
        """Launch the browser and open a page."""
        logger.info("Initializing Playwright browser...")

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            slow_mo=self.slow_mo,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--disable-infobars",
                "--no-sandbox",
            ]
        )

        self._context = await self._browser.new_context(
            viewport={"width": self.viewport_width, "height": self.viewport_height},
            user_agent=self.user_agent,
            java_script_enabled=True,
        )

        self._context.set_default_timeout(self.element_timeout_ms)
        self._context.set_default_navigation_timeout(self.timeout_ms)

        self._page = await self._context.new_page()
        self._is_initialized = True

        logger.success("Browser initialized successfully")

    async def close(self):
        """Close the browser and cleanup resources."""
        try:
            if self._page:
                await self._page.close()
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
            logger.info("Browser closed successfully")
        except PlaywrightError as e:
            logger.error(f"Error closing browser: {e}", exception=e)
        finally:
            self._is_initialized = False

    def _ensure_initialized(self):
        """Ensure browser is initialized before operations."""
        if not self._is_initialized or not self._page:
            raise RuntimeError("Browser not initialized. Call initialize() first.")

    def _wrap_action(self, action_type: str, details: dict[str, Any]):
        """Decorator factory that logs an action and reports its failure before re-raising."""
        def decorator(func: Callable):
            async def wrapper(*args, **kwargs):
                self._ensure_initialized()
                logger.action(action_type, details)
                try:
                    return await func(*args, **kwargs)
                except PlaywrightTimeout as e:
                    logger.debug(f"Timeout during {action_type}: {e}")
                    raise
                except PlaywrightError as e:
                    logger.debug(f"Playwright error during {action_type}: {e}")
                    raise
            return wrapper
        return decorator

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        """Navigate to a URL."""
        @self._wrap_action("navigate", {"url": url, "wait_until": wait_until})
        async def _navigate():
            await self._page.goto(url, wait_until=wait_until, timeout=self.timeout_ms)

        await _navigate()

    async def fill(self, descriptor: str, text: str) -> None:
        """Fill an input field."""
        @self._wrap_action("fill", {"selector": descriptor, "text": "*" * min(len(text), 8)})
        async def _fill():
            await self._page.locator(descriptor).first.fill(text)

        await _fill()

    async def click(self, descriptor: str) -> None:
        """Click on an element."""
        @self._wrap_action("click", {"selector": descriptor})
        async def _click():
            await self._page.locator(descriptor).first.click()

        await _click()

    async def wait_for_visible(self, descriptor: str, timeout_ms: int) -> bool:
        """Check a descriptor; a miss or an invalid selector reads as not visible."""
        self._ensure_initialized()
        try:
            await self._page.locator(descriptor).first.wait_for(state="visible", timeout=timeout_ms)
            return True
        except PlaywrightTimeout:
            logger.debug(f"Not visible within {timeout_ms}ms: {descriptor}")
            return False
        except PlaywrightError as e:
            logger.debug(f"Visibility check failed for {descriptor}: {e}")
            return False

    async def wait_for_load_signal(self, kind: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        """Wait for page load state."""
        @self._wrap_action("wait_for_load", {"state": kind, "timeout_ms": timeout_ms})
        async def _wait_load():
            await self._page.wait_for_load_state(kind, timeout=timeout_ms or self.timeout_ms)

        await _wait_load()

    async def reload(self, wait_until: str = "networkidle", timeout_ms: Optional[int] = None) -> None:
        """Refresh the current page."""
        @self._wrap_action("reload", {"wait_until": wait_until, "timeout_ms": timeout_ms})
        async def _reload():
            await self._page.reload(wait_until=wait_until, timeout=timeout_ms or self.timeout_ms)

        await _reload()

    async def screenshot(self, full_page: bool = True) -> bytes:
        """Capture a PNG screenshot."""
        self._ensure_initialized()
        return await self._page.screenshot(full_page=full_page, type="png")

    async def evaluate(self, script: str) -> Any:
        """Execute JavaScript in the page context."""
        self._ensure_initialized()
        return await self._page.evaluate(script)

    async def wait(self, ms: int) -> None:
        """Wait for a specified duration."""
        self._ensure_initialized()
        await asyncio.sleep(ms / 1000)

    async def text_content(self, descriptor: str) -> Optional[str]:
        """Inner text of the first match, or None when nothing matches."""
        self._ensure_initialized()
        locator = self._page.locator(descriptor)
        if await locator.count() == 0:
            return None
        text = await locator.first.inner_text()
        return text.strip()

    async def count(self, descriptor: str) -> int:
        """Number of elements matching a descriptor."""
        self._ensure_initialized()
        return await self._page.locator(descriptor).count()

    async def current_url(self) -> str:
        self._ensure_initialized()
        return self._page.url

    async def current_title(self) -> str:
        self._ensure_initialized()
        return await self._page.title()

    async def current_content(self) -> str:
        self._ensure_initialized()
        return await self._page.content()

    @property
    def page(self) -> Optional[Page]:
        """Get the current page object for advanced operations."""
        return self._page

    @property
    def is_ready(self) -> bool:
        """Check if browser is ready for operations."""
        return self._is_initialized and self._page is not None


async def create_browser(headless: bool = False) -> BrowserController:
    """Create and initialize a browser controller."""
    controller = BrowserController(headless=headless)
    await controller.initialize()
    return controller
