"""Coordinate spaces and the translation from reported to viewport pixels.

Clients describe pointer positions in whatever space they observed the
snapshot in. Everything downstream of :func:`to_viewport` works exclusively in
canonical viewport pixels, clamped into ``[0, width) x [0, height)``.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidInput


class ReportingSpace(str, enum.Enum):
    """Coordinate system a client used when reporting a pointer position."""

    RAW = "raw"
    NORMALIZED = "normalized"
    DISPLAY = "display"


@dataclass(frozen=True)
class ViewportSize:
    """Pixel dimensions of a viewport or of a displayed image."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidInput(f"Invalid size {self.width}x{self.height}")


@dataclass(frozen=True)
class ViewportPoint:
    """A point in canonical viewport pixels."""

    x: int
    y: int


@dataclass(frozen=True)
class ReportedPoint:
    """A point as reported by a client, in some :class:`ReportingSpace`."""

    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in viewport pixels."""

    x: float
    y: float
    width: float
    height: float


def clamp_point(x: float, y: float, viewport: ViewportSize) -> ViewportPoint:
    """Round half up and clamp a point into the viewport."""

    cx = min(max(math.floor(x + 0.5), 0), viewport.width - 1)
    cy = min(max(math.floor(y + 0.5), 0), viewport.height - 1)
    return ViewportPoint(cx, cy)


def to_viewport(
    reported: ReportedPoint,
    space: ReportingSpace,
    viewport: ViewportSize,
    display: Optional[ViewportSize] = None,
) -> ViewportPoint:
    """Translate ``reported`` into canonical viewport pixels.

    ``display`` is the size the client showed the snapshot at and is required
    for :attr:`ReportingSpace.DISPLAY`.
    """

    if space is ReportingSpace.RAW:
        return clamp_point(reported.x, reported.y, viewport)
    if space is ReportingSpace.NORMALIZED:
        fx = _unit(reported.x)
        fy = _unit(reported.y)
        return clamp_point(fx * viewport.width, fy * viewport.height, viewport)
    if space is ReportingSpace.DISPLAY:
        if display is None:
            raise InvalidInput("Display-space coordinates require the display size")
        return clamp_point(
            reported.x * viewport.width / display.width,
            reported.y * viewport.height / display.height,
            viewport,
        )
    raise InvalidInput(f"Unsupported reporting space: {space}")


def full_viewport(viewport: ViewportSize) -> Rect:
    return Rect(x=0, y=0, width=viewport.width, height=viewport.height)


def _unit(value: float) -> float:
    return min(max(value, 0.0), 1.0)
