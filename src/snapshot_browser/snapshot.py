"""Encoding the page surface into a transportable image."""

from __future__ import annotations

import logging
from typing import Optional

from .browser.base import RenderBackend
from .config import SnapshotConfig
from .errors import BackendError, RenderFailed
from .geometry import Rect, full_viewport
from .models import ImageArtifact

LOGGER = logging.getLogger(__name__)


class SnapshotEncoder:
    """Capture the current page as a JPEG or PNG artifact."""

    def __init__(self, config: Optional[SnapshotConfig] = None) -> None:
        self._config = config or SnapshotConfig()

    @property
    def mime_type(self) -> str:
        return self._config.mime_type

    async def capture(self, backend: RenderBackend, clip: Optional[Rect] = None) -> ImageArtifact:
        """Rasterise ``backend``'s page, clipped to ``clip`` (default: the viewport).

        A page that is still loading is captured as-is. If the clipped capture
        fails, an unclipped viewport capture is attempted before giving up.
        """

        region = clip or full_viewport(backend.viewport)
        try:
            data = await self._shoot(backend, region)
        except BackendError as exc:
            LOGGER.warning("Clipped capture failed (%s); retrying without clip", exc)
            try:
                data = await self._shoot(backend, None)
            except BackendError as retry_exc:
                raise RenderFailed(f"Could not capture page: {retry_exc}") from retry_exc
        if not data:
            raise RenderFailed("Backend returned an empty image")
        return ImageArtifact(data=data, mime_type=self.mime_type)

    async def _shoot(self, backend: RenderBackend, clip: Optional[Rect]) -> bytes:
        quality = self._config.quality if self._config.format == "jpeg" else None
        return await backend.screenshot(
            image_format=self._config.format,
            quality=quality,
            clip=clip,
        )
