"""Browser session - Playwright browser lifecycle."""

from typing import TYPE_CHECKING

import structlog
from playwright.async_api import async_playwright, Browser, BrowserContext

from steadyhand.core.config import BrowserConfig

if TYPE_CHECKING:
    from playwright.async_api import Page


logger = structlog.get_logger()


class BrowserSession:
    """One logical browser context.

    Pages opened from the same session share cookies and storage. Workers
    that need isolated UI state should each open their own page.
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        """Initialize the session.

        Args:
            config: Browser configuration
        """
        self.config = config or BrowserConfig()
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: "Page | None" = None

    async def start(self) -> "Page":
        """Start the browser and return the first page.

        Returns:
            Playwright page instance
        """
        self._playwright = await async_playwright().start()
        viewport = {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
        }

        if self.config.user_data_dir:
            logger.info(
                "browser_starting_persistent",
                user_data_dir=str(self.config.user_data_dir),
                headless=self.config.headless,
            )
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.config.user_data_dir),
                headless=self.config.headless,
                viewport=viewport,
            )
            self._page = self._context.pages[0] if self._context.pages else await self._context.new_page()
        else:
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless
            )

            context_options = {"viewport": viewport}
            if self.config.storage_state and self.config.storage_state.exists():
                logger.info(
                    "loading_storage_state",
                    storage_state=str(self.config.storage_state),
                )
                context_options["storage_state"] = str(self.config.storage_state)

            self._context = await self._browser.new_context(**context_options)
            self._page = await self._context.new_page()

        logger.info("browser_started", headless=self.config.headless)
        return self._page

    async def stop(self) -> None:
        """Stop the browser and cleanup resources."""
        if self._context:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug("context_close_error", error=str(e))

        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("browser_close_error", error=str(e))

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("playwright_stop_error", error=str(e))

        self._page = None
        logger.info("browser_stopped")

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    @property
    def page(self) -> "Page":
        """Get the current page instance."""
        if self._page is None:
            raise RuntimeError("Browser not started. Call start() first.")
        return self._page

    async def new_page(self) -> "Page":
        """Open another page in the same context.

        Returns:
            New Playwright page
        """
        if self._context is None:
            raise RuntimeError("Browser not started. Call start() first.")
        return await self._context.new_page()

    async def navigate(self, url: str, page: "Page | None" = None) -> None:
        """Navigate a page to a URL.

        Args:
            url: URL to navigate to
            page: Page to use (defaults to the session's first page)
        """
        target = page or self.page
        # "load" instead of "networkidle", widget-heavy apps rarely go idle
        await target.goto(
            url, wait_until="load", timeout=self.config.navigation_timeout * 1000
        )
        logger.info("navigated", url=url)
