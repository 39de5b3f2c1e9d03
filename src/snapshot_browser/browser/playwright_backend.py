"""Playwright-powered rendering backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from playwright.async_api import Browser, BrowserContext, Error, Page, Playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..config import BrowserConfig
from ..errors import BackendDisconnected, BackendError, BackendUnavailable, NavigationTimeout
from ..geometry import Rect, ViewportSize
from .base import ImageFormat, RenderBackend

LOGGER = logging.getLogger(__name__)

ELEMENT_AT_POINT_JS = """
({x, y, limit}) => {
  const el = document.elementFromPoint(x, y);
  if (!el) return null;
  const rect = el.getBoundingClientRect();
  const anchor = el.closest('a');
  const title = el.getAttribute('title') || el.getAttribute('alt')
    || el.getAttribute('aria-label') || '';
  const text = (el.innerText || el.value || el.alt || el.title || '').trim().slice(0, limit);
  return {
    tag: el.tagName.toLowerCase(),
    text,
    title,
    href: anchor ? (anchor.href || null) : (el.href || null),
    rect: {x: rect.x, y: rect.y, width: rect.width, height: rect.height},
  };
}
"""


class PlaywrightRuntime:
    """Process-wide Playwright driver, optionally owning a shared browser."""

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._shared: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def browser(self) -> tuple[Browser, bool]:
        """Return a browser and whether the caller owns it."""

        async with self._lock:
            playwright = self._playwright
            if playwright is None:
                LOGGER.debug("Starting Playwright driver")
                try:
                    playwright = await async_playwright().start()
                except Error as exc:
                    raise BackendUnavailable(f"Playwright driver failed to start: {exc}") from exc
                self._playwright = playwright
            if not self._config.shared_process:
                return await self._launch(playwright), True
            if self._shared is None or not self._shared.is_connected():
                self._shared = await self._launch(playwright)
            return self._shared, False

    async def close(self) -> None:
        async with self._lock:
            if self._shared is not None and self._shared.is_connected():
                await self._shared.close()
            self._shared = None
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = None

    async def _launch(self, playwright: Playwright) -> Browser:
        launch_kwargs: dict[str, Any] = {
            "headless": self._config.headless,
            "args": self._config.launch_args(),
        }
        if self._config.executable_path:
            launch_kwargs["executable_path"] = str(self._config.executable_path)
        LOGGER.info("Launching Chromium (headless=%s)", self._config.headless)
        try:
            return await playwright.chromium.launch(**launch_kwargs)
        except Error as exc:
            raise BackendUnavailable(f"Could not launch browser: {exc}") from exc


class PlaywrightRenderBackend(RenderBackend):
    """Rendering surface backed by a Playwright page in its own context."""

    def __init__(self, runtime: PlaywrightRuntime, viewport: ViewportSize) -> None:
        super().__init__(viewport)
        self._runtime = runtime
        self._browser: Optional[Browser] = None
        self._owns_browser = False
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._crashed = False

    async def start(self) -> None:
        browser, owned = await self._runtime.browser()
        self._browser = browser
        self._owns_browser = owned
        try:
            self._context = await browser.new_context(
                viewport={"width": self.viewport.width, "height": self.viewport.height},
            )
            self._page = await self._context.new_page()
        except Error as exc:
            await self.stop()
            raise BackendUnavailable(f"Could not open a page: {exc}") from exc
        self._page.on("crash", self._on_crash)

    async def stop(self) -> None:
        LOGGER.debug("Closing rendering surface")
        try:
            if self._context is not None:
                await self._context.close()
        except Error:
            LOGGER.debug("Context already closed", exc_info=True)
        finally:
            if self._owns_browser and self._browser is not None and self._browser.is_connected():
                await self._browser.close()
            self._context = None
            self._page = None
            self._browser = None

    def is_alive(self) -> bool:
        return (
            self._page is not None
            and not self._crashed
            and not self._page.is_closed()
            and self._browser is not None
            and self._browser.is_connected()
        )

    @property
    def current_url(self) -> Optional[str]:
        if self._page is None or self._page.is_closed():
            return None
        return self._page.url

    async def goto(self, url: str, *, timeout: float, wait_until: str = "load") -> None:
        page = self._require_page()
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout * 1000)  # type: ignore[arg-type]
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Navigation to {url} timed out after {timeout}s") from exc
        except Error as exc:
            raise self._translate(exc) from exc

    async def screenshot(
        self,
        *,
        image_format: ImageFormat,
        quality: Optional[int] = None,
        clip: Optional[Rect] = None,
    ) -> bytes:
        page = self._require_page()
        kwargs: dict[str, Any] = {"type": image_format}
        if image_format == "jpeg" and quality is not None:
            kwargs["quality"] = quality
        if clip is not None:
            kwargs["clip"] = {"x": clip.x, "y": clip.y, "width": clip.width, "height": clip.height}
        try:
            return await page.screenshot(**kwargs)
        except Error as exc:
            raise self._translate(exc) from exc

    async def mouse_click(self, x: int, y: int, *, delay: float = 0.0) -> None:
        page = self._require_page()
        try:
            await page.mouse.click(x, y, delay=delay * 1000)
        except Error as exc:
            raise self._translate(exc) from exc

    async def mouse_move(self, x: int, y: int) -> None:
        page = self._require_page()
        try:
            await page.mouse.move(x, y, steps=1)
        except Error as exc:
            raise self._translate(exc) from exc

    async def scroll_by(self, delta_y: int) -> None:
        page = self._require_page()
        try:
            await page.evaluate("dy => window.scrollBy(0, dy)", delta_y)
        except Error as exc:
            raise self._translate(exc) from exc

    async def keyboard_type(self, text: str) -> None:
        page = self._require_page()
        try:
            await page.keyboard.type(text)
        except Error as exc:
            raise self._translate(exc) from exc

    async def element_at(self, x: int, y: int, *, text_limit: int) -> Optional[dict[str, Any]]:
        page = self._require_page()
        try:
            return await page.evaluate(ELEMENT_AT_POINT_JS, {"x": x, "y": y, "limit": text_limit})
        except Error as exc:
            raise self._translate(exc) from exc

    # Internal helpers -------------------------------------------------

    def _require_page(self) -> Page:
        if not self.is_alive() or self._page is None:
            raise BackendDisconnected("Rendering surface is not running")
        return self._page

    def _translate(self, exc: Error) -> BackendError:
        if not self.is_alive():
            return BackendDisconnected(str(exc))
        return BackendError(str(exc))

    def _on_crash(self, _page: Page) -> None:
        LOGGER.warning("Page crashed; surface will be recreated")
        self._crashed = True
