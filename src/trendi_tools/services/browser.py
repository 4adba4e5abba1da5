"""Playwright browser service for website screenshots."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from trendi_tools.config import BrowserServiceConfig
from trendi_tools.core.errors import ScreenshotError
from trendi_tools.log import get_logger
from trendi_tools.services.base import Service

logger = get_logger(__name__)


class BrowserService(Service):
    """Manages a headless Playwright browser used to capture tool screenshots.

    The browser process is shared across captures; each capture runs in a
    fresh context so cookies or consent banners from one site never leak
    into the next.
    """

    def __init__(self, config: BrowserServiceConfig):
        self._config = config
        self._playwright: Optional[object] = None
        self._browser: Optional[object] = None
        self._lock = asyncio.Lock()

    @property
    def service_name(self) -> str:
        return "browser"

    async def start(self) -> None:
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self._config.browser_type)
        self._browser = await launcher.launch(
            headless=self._config.headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        logger.info(
            "browser_started",
            browser_type=self._config.browser_type,
            headless=self._config.headless,
        )

    async def stop(self) -> None:
        if self._browser:
            await self._browser.close()  # type: ignore[union-attr]
            self._browser = None
        if self._playwright:
            await self._playwright.stop()  # type: ignore[union-attr]
            self._playwright = None
        logger.info("browser_stopped")

    async def health_check(self) -> bool:
        return self._browser is not None and self._browser.is_connected()  # type: ignore[union-attr]

    async def capture(self, url: str, destination: Path) -> Path:
        """Load ``url``, let client-side rendering settle and write a PNG of the viewport."""
        if self._browser is None:
            raise ScreenshotError("Browser service is not running")

        async with self._lock:
            context = await self._browser.new_context(  # type: ignore[union-attr]
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                }
            )
            try:
                page = await context.new_page()
                await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self._config.timeout_ms,
                )
                await asyncio.sleep(self._config.settle_delay_ms / 1000)
                destination.parent.mkdir(parents=True, exist_ok=True)
                await page.screenshot(path=str(destination), full_page=False, type="png")
            finally:
                await context.close()

        logger.info("screenshot_saved", url=url, path=str(destination))
        return destination
