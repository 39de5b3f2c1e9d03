"""Rendering backend abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Literal, Optional

from ..geometry import Rect, ViewportSize

ImageFormat = Literal["jpeg", "png"]


class RenderBackend(ABC):
    """One live rendering surface: a page with a fixed viewport.

    Implementations raise :class:`~snapshot_browser.errors.BackendUnavailable`
    from :meth:`start`, :class:`~snapshot_browser.errors.BackendDisconnected`
    when the surface has died and :class:`~snapshot_browser.errors.BackendError`
    for any other failed call.
    """

    def __init__(self, viewport: ViewportSize) -> None:
        self.viewport = viewport

    @abstractmethod
    async def start(self) -> None:
        """Launch (or attach to) a browser and open a page."""

    @abstractmethod
    async def stop(self) -> None:
        """Release the page and anything owned by this surface."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Return whether the surface can still accept calls."""

    @property
    @abstractmethod
    def current_url(self) -> Optional[str]:
        """URL the page is currently showing."""

    @abstractmethod
    async def goto(self, url: str, *, timeout: float, wait_until: str = "load") -> None:
        """Navigate, raising ``NavigationTimeout`` if ``timeout`` seconds elapse."""

    @abstractmethod
    async def screenshot(
        self,
        *,
        image_format: ImageFormat,
        quality: Optional[int] = None,
        clip: Optional[Rect] = None,
    ) -> bytes:
        """Rasterise the page surface."""

    @abstractmethod
    async def mouse_click(self, x: int, y: int, *, delay: float = 0.0) -> None:
        """Press and release the primary button at ``(x, y)``."""

    @abstractmethod
    async def mouse_move(self, x: int, y: int) -> None:
        """Move the pointer to ``(x, y)``."""

    @abstractmethod
    async def scroll_by(self, delta_y: int) -> None:
        """Scroll the page vertically by ``delta_y`` pixels."""

    @abstractmethod
    async def keyboard_type(self, text: str) -> None:
        """Type ``text`` into whatever element holds focus."""

    @abstractmethod
    async def element_at(self, x: int, y: int, *, text_limit: int) -> Optional[dict[str, Any]]:
        """Describe the element under ``(x, y)`` without interacting with it."""


BackendFactory = Callable[[ViewportSize], RenderBackend]
