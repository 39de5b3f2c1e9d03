"""Lifecycle of keyed rendering sessions.

Each session key owns at most one live page. Access is leased through
:meth:`SessionManager.acquire`, which holds the key's lock for the whole
lease, so actions against one key are applied one at a time in the order the
leases were requested.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .browser.base import BackendFactory, RenderBackend
from .config import SessionConfig, TimingConfig
from .errors import BackendDisconnected, BackendError, BackendUnavailable, NavigationTimeout
from .geometry import ViewportSize

LOGGER = logging.getLogger(__name__)

# Extra time granted on top of the backend's own navigation timeout before
# the call is cancelled outright.
NAVIGATION_GRACE = 5.0


@dataclass
class Session:
    """A live rendering surface bound to a session key.

    ``url`` is the last address requested for the session and ``landed_url``
    is where the page ended up after that navigation.
    """

    key: str
    viewport: ViewportSize
    backend: RenderBackend
    url: Optional[str] = None
    landed_url: Optional[str] = None
    alive: bool = True
    navigations: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_used: int = 0

    @property
    def current_url(self) -> Optional[str]:
        return self.backend.current_url or self.url


class SessionHandle:
    """Lease-scoped access to a session, valid only inside ``acquire``."""

    def __init__(self, session: Session) -> None:
        self._session: Optional[Session] = session

    @property
    def key(self) -> str:
        return self._require().key

    @property
    def viewport(self) -> ViewportSize:
        return self._require().viewport

    @property
    def url(self) -> Optional[str]:
        """Address the page is showing right now."""

        return self._require().current_url

    @property
    def backend(self) -> RenderBackend:
        return self._require().backend

    def invalidate(self) -> None:
        """Mark the surface dead so the next lease recreates it."""

        session = self._require()
        if session.alive:
            LOGGER.warning("Session %s marked dead", session.key)
        session.alive = False

    def _release(self) -> None:
        self._session = None

    def _require(self) -> Session:
        if self._session is None:
            raise RuntimeError("Session handle used outside of its lease")
        return self._session


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    session: Optional[Session] = None
    # Leases and closes holding or waiting for ``lock``.
    users: int = 0


class SessionManager:
    """Own one session per key, recreating dead surfaces transparently.

    At most ``config.max_sessions`` sessions are live; creating one more
    closes the least recently used idle session first.
    """

    def __init__(
        self,
        backend_factory: BackendFactory,
        *,
        default_viewport: ViewportSize,
        config: Optional[SessionConfig] = None,
        timing: Optional[TimingConfig] = None,
    ) -> None:
        self._factory = backend_factory
        self._default_viewport = default_viewport
        self._config = config or SessionConfig()
        self._timing = timing or TimingConfig()
        self._slots: Dict[str, _Slot] = {}
        self._lease_counter = itertools.count(1)

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        url: Optional[str] = None,
        viewport: Optional[ViewportSize] = None,
        *,
        read_only: bool = False,
    ) -> AsyncIterator[SessionHandle]:
        """Lease the session for ``key``, creating it and navigating to ``url``.

        ``viewport`` forces a recreation when it differs from the live
        session's viewport; ``None`` keeps whatever the session already has.
        A ``read_only`` lease never disturbs a live page: ``url`` and
        ``viewport`` only apply when the session has to be created.
        Raises :class:`BackendUnavailable` when no surface can be started.
        """

        slot = self._slots.setdefault(key, _Slot())
        slot.users += 1
        try:
            async with slot.lock:
                session = await self._ensure(slot, key, viewport, read_only=read_only)
                if url is not None and not (read_only and session.navigations):
                    session = await self._navigate(slot, session, url)
                handle = SessionHandle(session)
                try:
                    yield handle
                finally:
                    handle._release()
                    session.last_used = next(self._lease_counter)
                    if self._config.policy == "ephemeral" or not session.alive:
                        await self._discard(slot)
        finally:
            slot.users -= 1
            self._prune(key, slot)

    async def close(self, key: str) -> bool:
        slot = self._slots.get(key)
        if slot is None:
            return False
        slot.users += 1
        try:
            async with slot.lock:
                if slot.session is None:
                    return False
                await self._discard(slot)
                return True
        finally:
            slot.users -= 1
            self._prune(key, slot)

    async def close_all(self) -> None:
        for key in list(self._slots):
            await self.close(key)

    def describe(self) -> List[Dict[str, Any]]:
        """Summaries of the live sessions, for diagnostics."""

        items = []
        for key, slot in sorted(self._slots.items()):
            session = slot.session
            if session is None:
                continue
            items.append(
                {
                    "key": key,
                    "url": session.current_url,
                    "width": session.viewport.width,
                    "height": session.viewport.height,
                    "navigations": session.navigations,
                    "created_at": session.created_at.isoformat(),
                    "busy": slot.lock.locked(),
                }
            )
        return items

    # Internal helpers -------------------------------------------------

    async def _ensure(
        self,
        slot: _Slot,
        key: str,
        viewport: Optional[ViewportSize],
        *,
        read_only: bool = False,
    ) -> Session:
        session = slot.session
        if session is not None:
            if not session.alive or not session.backend.is_alive():
                LOGGER.warning("Session %s is dead; recreating", key)
                await self._discard(slot)
            elif read_only or viewport is None or viewport == session.viewport:
                return session
            else:
                LOGGER.info(
                    "Session %s viewport changes %sx%s -> %sx%s; recreating",
                    key,
                    session.viewport.width,
                    session.viewport.height,
                    viewport.width,
                    viewport.height,
                )
                await self._discard(slot)
        return await self._create(slot, key, viewport or self._default_viewport)

    async def _create(self, slot: _Slot, key: str, viewport: ViewportSize) -> Session:
        await self._evict_idle()
        LOGGER.info("Creating session %s (%sx%s)", key, viewport.width, viewport.height)
        backend = self._factory(viewport)
        try:
            await backend.start()
        except BackendUnavailable:
            await self._stop_quietly(backend)
            raise
        except BackendError as exc:
            await self._stop_quietly(backend)
            raise BackendUnavailable(str(exc)) from exc
        session = Session(key=key, viewport=viewport, backend=backend)
        slot.session = session
        return session

    async def _evict_idle(self) -> None:
        live = [slot for slot in self._slots.values() if slot.session is not None]
        excess = len(live) - self._config.max_sessions + 1
        if excess <= 0:
            return
        idle = sorted(
            (slot for slot in live if slot.users == 0),
            key=lambda slot: slot.session.last_used if slot.session else 0,
        )
        for slot in idle[:excess]:
            if slot.session is None:
                continue
            key = slot.session.key
            LOGGER.info("Evicting idle session %s", key)
            await self._discard(slot)
            self._prune(key, slot)

    async def _navigate(self, slot: _Slot, session: Session, url: str) -> Session:
        if self._config.navigation == "on_change" and self._is_showing(session, url):
            LOGGER.debug("Session %s already at %s", session.key, url)
            return session
        try:
            await self._goto(session, url)
        except BackendDisconnected:
            LOGGER.warning("Session %s died during navigation; recreating", session.key)
            await self._discard(slot)
            session = await self._create(slot, session.key, session.viewport)
            try:
                await self._goto(session, url)
            except BackendDisconnected:
                LOGGER.warning("Recreated session %s died during navigation", session.key)
                session.alive = False
        return session

    def _is_showing(self, session: Session, url: str) -> bool:
        """Whether the page still sits where navigating to ``url`` left it."""

        return session.url == url and session.backend.current_url == session.landed_url

    async def _goto(self, session: Session, url: str) -> None:
        timeout = self._timing.navigation_timeout
        LOGGER.info("Session %s navigating to %s", session.key, url)
        session.url = url
        session.navigations += 1
        try:
            await asyncio.wait_for(
                session.backend.goto(url, timeout=timeout, wait_until=self._timing.wait_until),
                timeout=timeout + NAVIGATION_GRACE,
            )
        except (NavigationTimeout, asyncio.TimeoutError):
            LOGGER.warning("Navigation to %s timed out; using the partial render", url)
        except BackendDisconnected:
            raise
        except BackendError as exc:
            LOGGER.warning("Navigation to %s failed (%s); using what rendered", url, exc)
        session.landed_url = session.backend.current_url

    async def _discard(self, slot: _Slot) -> None:
        session = slot.session
        slot.session = None
        if session is None:
            return
        session.alive = False
        LOGGER.info("Closing session %s", session.key)
        await self._stop_quietly(session.backend)

    def _prune(self, key: str, slot: _Slot) -> None:
        if slot.users == 0 and slot.session is None and self._slots.get(key) is slot:
            del self._slots[key]

    async def _stop_quietly(self, backend: RenderBackend) -> None:
        try:
            await backend.stop()
        except Exception:  # pragma: no cover - teardown must not mask the caller's error
            LOGGER.exception("Failed to stop rendering backend")
