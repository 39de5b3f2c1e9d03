"""Execution of interaction primitives against a leased session."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from .config import HoverConfig, TimingConfig
from .errors import (
    ActionExecutionFailed,
    BackendDisconnected,
    BackendError,
    HoverProbeFailed,
    InvalidInput,
    RenderFailed,
)
from .geometry import ViewportPoint, clamp_point
from .models import ActionRequest, ActionResult, ActionType, ElementDescriptor, ImageArtifact
from .session import SessionHandle
from .snapshot import SnapshotEncoder

LOGGER = logging.getLogger(__name__)


class ActionEngine:
    """Apply one action to a session and produce a snapshot or element description.

    Click, scroll and type failures are absorbed: the engine still returns
    whatever the page looks like afterwards and only raises
    :class:`RenderFailed` when no image can be captured at all. Hover probes
    never raise for backend problems; they answer ``None`` instead.
    """

    def __init__(
        self,
        encoder: SnapshotEncoder,
        *,
        timing: Optional[TimingConfig] = None,
        hover: Optional[HoverConfig] = None,
    ) -> None:
        self._encoder = encoder
        self._timing = timing or TimingConfig()
        self._hover = hover or HoverConfig()

    async def perform(
        self,
        handle: SessionHandle,
        action: ActionRequest,
        point: Optional[ViewportPoint] = None,
    ) -> ActionResult:
        if action.type is ActionType.RENDER:
            return await self.capture(handle)
        if action.type is ActionType.HOVER:
            return await self.hover(handle, self._target(handle, action, point))
        try:
            settle = await self._apply(handle, action, point)
        except ActionExecutionFailed as exc:
            LOGGER.warning("%s failed in session %s: %s", action.type.value, handle.key, exc)
        else:
            if settle:
                await asyncio.sleep(settle)
        return await self.capture(handle)

    async def hover(self, handle: SessionHandle, point: ViewportPoint) -> Optional[ElementDescriptor]:
        try:
            return await self._probe(handle, point)
        except HoverProbeFailed as exc:
            LOGGER.debug("Hover probe at %s,%s failed: %s", point.x, point.y, exc)
            return None

    async def capture(self, handle: SessionHandle) -> ImageArtifact:
        try:
            return await self._encoder.capture(handle.backend)
        except RenderFailed:
            if not handle.backend.is_alive():
                handle.invalidate()
            raise

    # Internal helpers -------------------------------------------------

    async def _apply(
        self,
        handle: SessionHandle,
        action: ActionRequest,
        point: Optional[ViewportPoint],
    ) -> float:
        """Run the backend call for ``action`` and return its settle delay."""

        backend = handle.backend
        try:
            if action.type is ActionType.CLICK:
                target = self._target(handle, action, point)
                LOGGER.info(
                    "Session %s click at %s,%s on %s", handle.key, target.x, target.y, handle.url
                )
                await backend.mouse_click(target.x, target.y, delay=self._timing.click_press_delay)
                return self._timing.click_settle
            if action.type is ActionType.SCROLL:
                LOGGER.info("Session %s scroll by %s", handle.key, action.delta_y)
                await backend.scroll_by(action.delta_y)
                return self._timing.scroll_settle
            if action.type is ActionType.TYPE:
                LOGGER.info("Session %s type %d characters", handle.key, len(action.text))
                await backend.keyboard_type(action.text)
                return self._timing.type_settle
        except BackendDisconnected as exc:
            handle.invalidate()
            raise ActionExecutionFailed(str(exc)) from exc
        except BackendError as exc:
            raise ActionExecutionFailed(str(exc)) from exc
        raise InvalidInput(f"Unsupported action type: {action.type}")

    def _target(
        self,
        handle: SessionHandle,
        action: ActionRequest,
        point: Optional[ViewportPoint],
    ) -> ViewportPoint:
        if point is None:
            raise InvalidInput(f"{action.type.value} requires a point")
        return clamp_point(point.x, point.y, handle.viewport)

    async def _probe(self, handle: SessionHandle, point: ViewportPoint) -> Optional[ElementDescriptor]:
        backend = handle.backend
        limit = self._hover.text_limit
        try:
            if self._hover.move_pointer:
                await backend.mouse_move(point.x, point.y)
            raw = await backend.element_at(point.x, point.y, text_limit=limit)
        except BackendDisconnected as exc:
            handle.invalidate()
            raise HoverProbeFailed(str(exc)) from exc
        except BackendError as exc:
            raise HoverProbeFailed(str(exc)) from exc
        if not raw or not raw.get("tag"):
            return None
        try:
            descriptor = ElementDescriptor.model_validate(raw)
        except ValidationError as exc:
            raise HoverProbeFailed(f"Unexpected element description: {exc}") from exc
        if len(descriptor.text) > limit:
            descriptor.text = descriptor.text[:limit]
        return descriptor
