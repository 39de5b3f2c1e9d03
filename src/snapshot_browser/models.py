"""Shared models used across the snapshot browser."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, Field

from .geometry import ReportedPoint, ReportingSpace, ViewportSize


class ActionType(str, enum.Enum):
    """Interaction primitives a client can request against a session."""

    RENDER = "render"
    CLICK = "click"
    SCROLL = "scroll"
    TYPE = "type"
    HOVER = "hover"


class ActionRequest(BaseModel):
    """A normalised client request, independent of how it was transported."""

    type: ActionType
    session_key: str = "default"
    url: Optional[str] = None
    width: Optional[int] = Field(default=None, description="Explicit viewport width override")
    height: Optional[int] = Field(default=None, description="Explicit viewport height override")
    x: Optional[float] = None
    y: Optional[float] = None
    space: ReportingSpace = ReportingSpace.RAW
    display_width: Optional[int] = None
    display_height: Optional[int] = None
    delta_y: int = Field(default=0, description="Pixels to scroll vertically (positive = down).")
    text: str = ""

    @property
    def is_pointer(self) -> bool:
        return self.type in {ActionType.CLICK, ActionType.HOVER}

    def reported_point(self) -> ReportedPoint:
        return ReportedPoint(x=self.x or 0.0, y=self.y or 0.0)

    def display_size(self) -> Optional[ViewportSize]:
        if self.display_width is None or self.display_height is None:
            return None
        return ViewportSize(self.display_width, self.display_height)

    def viewport(self, default: ViewportSize) -> ViewportSize:
        """Return the requested viewport, falling back to ``default`` per axis."""

        return ViewportSize(
            self.width if self.width is not None else default.width,
            self.height if self.height is not None else default.height,
        )


class RectModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class ElementDescriptor(BaseModel):
    """Description of the element found under a hover probe."""

    tag: str
    text: str = ""
    title: str = ""
    href: Optional[str] = None
    rect: RectModel


@dataclass(frozen=True)
class ImageArtifact:
    """Encoded snapshot of the page surface."""

    data: bytes
    mime_type: str


ActionResult = Union[ImageArtifact, ElementDescriptor, None]
