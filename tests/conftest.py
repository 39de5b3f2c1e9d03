from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from snapshot_browser.browser.base import RenderBackend
from snapshot_browser.config import ServiceConfig
from snapshot_browser.errors import BackendDisconnected, BackendError
from snapshot_browser.geometry import Rect, ViewportSize


class FakeBackend(RenderBackend):
    """In-memory stand-in for a browser page.

    Elements are rectangles; clicking one with an ``href`` navigates, clicking
    one with ``focusable`` gives it keyboard focus.
    """

    def __init__(self, farm: "FakeBrowserFarm", viewport: ViewportSize) -> None:
        super().__init__(viewport)
        self.farm = farm
        self.calls: list[tuple[Any, ...]] = []
        self.started = False
        self.stopped = False
        self.alive = True
        self.url: Optional[str] = None
        self.scroll_y = 0
        self.focused: Optional[dict[str, Any]] = None
        self.typed = ""
        self.fail: set[str] = set()
        self.disconnect: set[str] = set()

    async def start(self) -> None:
        if self.farm.launch_error is not None:
            raise self.farm.launch_error
        self.started = True

    async def stop(self) -> None:
        self.stopped = True
        self.alive = False

    def is_alive(self) -> bool:
        return self.alive

    @property
    def current_url(self) -> Optional[str]:
        return self.url

    async def goto(self, url: str, *, timeout: float, wait_until: str = "load") -> None:
        self._record("goto", url)
        self.url = url
        self.scroll_y = 0
        self.focused = None
        if self.farm.navigation_delay:
            await asyncio.sleep(self.farm.navigation_delay)
        if self.farm.navigation_error is not None:
            raise self.farm.navigation_error

    async def screenshot(self, *, image_format, quality=None, clip: Optional[Rect] = None) -> bytes:
        self._record("screenshot", image_format, quality, clip)
        if clip is not None and "clip" in self.fail:
            raise BackendError("clip outside page")
        return f"{image_format}:{self.url}:{self.scroll_y}:{self.typed}".encode()

    async def mouse_click(self, x: int, y: int, *, delay: float = 0.0) -> None:
        self._record("click", x, y)
        if self.farm.action_delay:
            await asyncio.sleep(self.farm.action_delay)
        element = self._hit(x, y)
        self.focused = None
        if element and element.get("href"):
            self.url = element["href"]
            self.scroll_y = 0
        elif element and element.get("focusable"):
            self.focused = element
        self._record("click-done", x, y)

    async def mouse_move(self, x: int, y: int) -> None:
        self._record("move", x, y)

    async def scroll_by(self, delta_y: int) -> None:
        self._record("scroll", delta_y, self.url)
        self.scroll_y += delta_y

    async def keyboard_type(self, text: str) -> None:
        self._record("type", text)
        if self.focused is not None:
            self.typed += text

    async def element_at(self, x: int, y: int, *, text_limit: int) -> Optional[dict[str, Any]]:
        self._record("element_at", x, y)
        element = self._hit(x, y)
        if element is None:
            return None
        return {
            "tag": element["tag"],
            "text": element.get("text", "")[:text_limit],
            "title": element.get("title", ""),
            "href": element.get("href"),
            "rect": dict(zip(("x", "y", "width", "height"), element["box"])),
        }

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        self.farm.log.append((id(self), name))
        if not self.alive:
            raise BackendDisconnected(f"{name}: target closed")
        if name in self.disconnect:
            self.alive = False
            raise BackendDisconnected(f"{name}: target closed")
        if name in self.fail:
            raise BackendError(f"{name} failed")

    def _hit(self, x: int, y: int) -> Optional[dict[str, Any]]:
        for element in self.farm.elements:
            ex, ey, ew, eh = element["box"]
            if ex <= x < ex + ew and ey <= y < ey + eh:
                return element
        return None


class FakeBrowserFarm:
    """Backend factory that remembers every surface it created."""

    def __init__(self) -> None:
        self.backends: list[FakeBackend] = []
        self.log: list[tuple[int, str]] = []
        self.launch_error: Optional[Exception] = None
        self.navigation_error: Optional[Exception] = None
        self.navigation_delay = 0.0
        self.action_delay = 0.0
        self.elements: list[dict[str, Any]] = [
            {
                "tag": "a",
                "text": "More information...",
                "href": "https://www.iana.org/domains/example",
                "box": (100, 200, 150, 20),
            },
            {"tag": "input", "title": "Search", "focusable": True, "box": (100, 300, 200, 30)},
        ]

    def __call__(self, viewport: ViewportSize) -> FakeBackend:
        backend = FakeBackend(self, viewport)
        self.backends.append(backend)
        return backend

    @property
    def latest(self) -> FakeBackend:
        return self.backends[-1]


@pytest.fixture
def farm() -> FakeBrowserFarm:
    return FakeBrowserFarm()


@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig.model_validate(
        {
            "timing": {
                "click_settle": 0,
                "scroll_settle": 0,
                "type_settle": 0,
                "click_press_delay": 0,
                "navigation_timeout": 1,
            },
            "snapshot": {"format": "png"},
        }
    )
