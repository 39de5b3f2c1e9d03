"""Request-level orchestration: validate, lease a session, translate, act."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from .actions import ActionEngine
from .config import ServiceConfig
from .errors import InvalidInput, RequestAbandoned
from .geometry import ReportingSpace, ViewportSize, to_viewport
from .models import ActionRequest, ActionResult, ActionType
from .session import SessionManager

LOGGER = logging.getLogger(__name__)


class SnapshotService:
    """Run client actions against their sessions.

    Every action runs in its own task. Once started it is never cancelled:
    if the caller gives up (``timing.request_timeout`` elapses or the request
    is cancelled) the action keeps its place in the session queue and its side
    effect still lands on the page. Callers that need strict ordering across
    requests must serialise their own requests.

    Hover probes take read-only leases: they queue behind other actions but
    never navigate or resize a page that is already open.
    """

    def __init__(
        self,
        config: ServiceConfig,
        sessions: SessionManager,
        engine: ActionEngine,
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._engine = engine
        self._inflight: Set[asyncio.Task[ActionResult]] = set()

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    async def execute(self, request: ActionRequest) -> ActionResult:
        viewport = self.validate(request)
        task = asyncio.ensure_future(self._run(request, viewport))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        timeout = self._config.timing.request_timeout
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError as exc:
            LOGGER.warning(
                "%s on session %s abandoned after %ss; the action continues",
                request.type.value,
                request.session_key,
                timeout,
            )
            raise RequestAbandoned(
                f"Request timed out after {timeout}s; the action may still be applied"
            ) from exc

    def validate(self, request: ActionRequest) -> Optional[ViewportSize]:
        """Reject malformed requests before any session is touched.

        Returns the explicit viewport override, if the request carries one.
        """

        if request.type is ActionType.RENDER and not request.url:
            raise InvalidInput("Missing url parameter")
        if request.is_pointer:
            if request.x is None or request.y is None:
                raise InvalidInput("Missing x and y coordinates")
            if request.space is ReportingSpace.DISPLAY and request.display_size() is None:
                raise InvalidInput("Display coordinates require display_width and display_height")
        if request.width is None and request.height is None:
            return None
        return self._config.viewport.check(request.viewport(self._config.viewport.default))

    async def drain(self) -> None:
        """Wait for every in-flight action to finish."""

        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run(self, request: ActionRequest, viewport: Optional[ViewportSize]) -> ActionResult:
        lease = self._sessions.acquire(
            request.session_key,
            request.url,
            viewport,
            read_only=request.type is ActionType.HOVER,
        )
        async with lease as handle:
            point = None
            if request.is_pointer:
                point = to_viewport(
                    request.reported_point(),
                    request.space,
                    handle.viewport,
                    request.display_size(),
                )
                LOGGER.debug(
                    "Translated %s,%s (%s) to %s,%s",
                    request.x,
                    request.y,
                    request.space.value,
                    point.x,
                    point.y,
                )
            return await self._engine.perform(handle, request, point)
