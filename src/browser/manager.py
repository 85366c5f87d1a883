"""
Browser Manager - one browser process per run, one context per site.

The process is launched once and shut down exactly once; every site
gets its own browser context (own cookie/storage jar), optionally
seeded from a persisted session file.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, Union

import structlog
from playwright.async_api import async_playwright

logger = structlog.get_logger()


class BrowserManager:
    """
    Owns the browser process for the duration of a run.

    Features:
    - Single launch per run (headless/slowMo)
    - Isolated context + page per site, closed on every exit path
    - Session persistence via storage_state
    - Idempotent shutdown
    """

    def __init__(
        self,
        headless: bool = True,
        slow_mo: int = 0,
        browser_type: str = "chromium",
        driver: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize browser manager.

        Args:
            headless: Run browser in headless mode
            slow_mo: Delay in ms applied by the driver to every operation
            browser_type: chromium, firefox or webkit
            driver: Factory returning an object with `start()` (default:
                playwright's async_playwright)
        """
        self.headless = headless
        self.slow_mo = slow_mo
        self.browser_type = browser_type
        self._driver = driver or async_playwright

        self._playwright = None
        self._browser = None
        self._lock = asyncio.Lock()
        self._launched = False
        self.contexts_opened = 0

    async def launch(self) -> None:
        """Start the driver and launch the browser process."""
        async with self._lock:
            if self._launched:
                return

            logger.info("browser_launching", headless=self.headless, browser=self.browser_type)

            self._playwright = await self._driver().start()
            launcher = getattr(self._playwright, self.browser_type)
            self._browser = await launcher.launch(
                headless=self.headless,
                slow_mo=self.slow_mo,
            )

            self._launched = True
            logger.info("browser_launched")

    async def shutdown(self) -> None:
        """Close the browser process and stop the driver."""
        async with self._lock:
            if not self._launched:
                return

            logger.info("browser_shutting_down")

            try:
                if self._browser:
                    await self._browser.close()
                    self._browser = None

                if self._playwright:
                    await self._playwright.stop()
                    self._playwright = None

            except Exception as e:
                logger.error("browser_shutdown_error", error=str(e))

            self._launched = False
            logger.info("browser_shutdown_complete")

    async def __aenter__(self) -> "BrowserManager":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @asynccontextmanager
    async def open_context(
        self,
        viewport: Optional[dict] = None,
        storage_state: Optional[Union[str, Path]] = None,
    ) -> AsyncIterator[tuple[Any, Any]]:
        """
        Open an isolated browser context with one page.

        Yields (context, page); both are closed when the block exits,
        whether it exits normally or by exception.
        """
        if not self._launched:
            await self.launch()

        options: dict[str, Any] = {}
        if viewport:
            options["viewport"] = viewport
        if storage_state:
            options["storage_state"] = str(storage_state)

        context = await self._browser.new_context(**options)
        self.contexts_opened += 1
        page = None

        try:
            page = await context.new_page()
            yield context, page
        finally:
            if page is not None and not page.is_closed():
                await self._close_quietly(page, "page")
            await self._close_quietly(context, "context")

    async def _close_quietly(self, resource: Any, kind: str) -> None:
        try:
            await resource.close()
        except Exception as e:
            logger.warning("browser_close_failed", resource=kind, error=str(e))

    @asynccontextmanager
    async def open_page(
        self,
        viewport: Optional[dict] = None,
        storage_state: Optional[Union[str, Path]] = None,
    ) -> AsyncIterator[Any]:
        """Like open_context() but yields only the page."""
        async with self.open_context(viewport=viewport, storage_state=storage_state) as (_, page):
            yield page

    async def save_storage_state(self, context: Any, path: Union[str, Path]) -> str:
        """Persist cookies/local storage of a context to `path`."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        await context.storage_state(path=str(path))
        logger.info("storage_state_saved", path=str(path))
        return str(path)

    @property
    def is_launched(self) -> bool:
        """Check if the browser process is running."""
        return self._launched

    def get_status(self) -> dict:
        """Browser status for diagnostics."""
        return {
            "launched": self._launched,
            "headless": self.headless,
            "browser": self.browser_type,
            "contexts_opened": self.contexts_opened,
        }
