"""Factories for constructing components from configuration."""

from __future__ import annotations

from .actions import ActionEngine
from .browser.base import BackendFactory
from .browser.display import VirtualDisplayManager
from .browser.playwright_backend import PlaywrightRenderBackend, PlaywrightRuntime
from .config import BrowserConfig, ServiceConfig
from .geometry import ViewportSize
from .service import SnapshotService
from .session import SessionManager
from .snapshot import SnapshotEncoder


def build_runtime(config: BrowserConfig) -> PlaywrightRuntime:
    return PlaywrightRuntime(config)


def build_backend_factory(runtime: PlaywrightRuntime) -> BackendFactory:
    def _factory(viewport: ViewportSize) -> PlaywrightRenderBackend:
        return PlaywrightRenderBackend(runtime, viewport)

    return _factory


def build_display(config: ServiceConfig) -> VirtualDisplayManager:
    enabled = config.browser.virtual_display and not config.browser.headless
    return VirtualDisplayManager(
        enabled=enabled,
        width=config.viewport.max_width,
        height=config.viewport.max_height,
    )


def build_service(config: ServiceConfig, backend_factory: BackendFactory) -> SnapshotService:
    sessions = SessionManager(
        backend_factory,
        default_viewport=config.viewport.default,
        config=config.session,
        timing=config.timing,
    )
    engine = ActionEngine(
        SnapshotEncoder(config.snapshot),
        timing=config.timing,
        hover=config.hover,
    )
    return SnapshotService(config, sessions, engine)
