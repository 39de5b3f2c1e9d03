"""Virtual X display for running a headed browser on a display-less host."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Optional

from pyvirtualdisplay import Display

LOGGER = logging.getLogger(__name__)


class VirtualDisplayManager:
    """Manage an Xvfb display for the lifetime of the service."""

    def __init__(self, enabled: bool = True, width: int = 1920, height: int = 1080) -> None:
        self.enabled = enabled
        self._width = width
        self._height = height
        self._display: Optional[Display] = None

    def start(self) -> Optional[str]:
        """Start the display and return its ``DISPLAY`` value, if any."""

        if not self.enabled:
            return None
        if shutil.which("Xvfb") is None:
            LOGGER.warning("Xvfb not found; continuing without a virtual display")
            self.enabled = False
            return None
        LOGGER.debug("Starting virtual display %sx%s", self._width, self._height)
        self._display = Display(visible=False, size=(self._width, self._height))
        self._display.start()
        display_var = os.environ.get("DISPLAY")
        if not display_var:
            raise RuntimeError(
                "DISPLAY environment variable missing after starting virtual display"
            )
        LOGGER.info("Virtual display running on %s", display_var)
        return display_var

    def stop(self) -> None:
        if self._display:
            LOGGER.debug("Stopping virtual display")
            self._display.stop()
        self._display = None
