from __future__ import annotations

from snapshot_browser.browser import display as display_module
from snapshot_browser.browser.display import VirtualDisplayManager
from snapshot_browser.config import ServiceConfig
from snapshot_browser.factory import build_display


class DummyDisplay:
    instances: list["DummyDisplay"] = []

    def __init__(self, visible: bool, size: tuple[int, int]) -> None:
        self.size = size
        self.started = False
        self.stopped = False
        DummyDisplay.instances.append(self)

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True


def test_disabled_display_is_a_no_op():
    manager = VirtualDisplayManager(enabled=False)

    assert manager.start() is None
    manager.stop()


def test_missing_xvfb_disables_display(monkeypatch):
    monkeypatch.setattr(display_module.shutil, "which", lambda name: None)
    manager = VirtualDisplayManager(enabled=True)

    assert manager.start() is None
    assert manager.enabled is False


def test_display_lifecycle(monkeypatch):
    monkeypatch.setattr(display_module.shutil, "which", lambda name: "/usr/bin/Xvfb")
    monkeypatch.setattr(display_module, "Display", DummyDisplay)
    monkeypatch.setenv("DISPLAY", ":99")

    manager = VirtualDisplayManager(enabled=True, width=800, height=600)

    assert manager.start() == ":99"
    dummy = DummyDisplay.instances[-1]
    assert dummy.started and dummy.size == (800, 600)

    manager.stop()
    assert dummy.stopped


def test_display_only_enabled_for_headed_runs():
    headless = ServiceConfig.model_validate({"browser": {"virtual_display": True}})
    headed = ServiceConfig.model_validate({"browser": {"virtual_display": True, "headless": False}})

    assert build_display(headless).enabled is False
    assert build_display(headed).enabled is True
