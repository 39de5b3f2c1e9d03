"""Error taxonomy shared by the session, action and HTTP layers."""

from __future__ import annotations


class SnapshotBrowserError(RuntimeError):
    """Base class for all errors raised by the snapshot browser."""


class InvalidInput(SnapshotBrowserError):
    """A request is missing a required field or carries an unparseable one."""


class BackendUnavailable(SnapshotBrowserError):
    """No rendering surface could be started or obtained."""


class BackendError(SnapshotBrowserError):
    """A call into the rendering backend failed."""


class BackendDisconnected(BackendError):
    """The rendering surface is gone (process crashed or handle closed)."""


class NavigationTimeout(BackendError):
    """Navigation did not settle within the configured timeout."""


class ActionExecutionFailed(SnapshotBrowserError):
    """A click, scroll or type call failed against the page."""


class HoverProbeFailed(SnapshotBrowserError):
    """Inspecting the element under a point failed."""


class RenderFailed(SnapshotBrowserError):
    """No image of the page could be produced."""


class RequestAbandoned(SnapshotBrowserError):
    """The caller stopped waiting; the action itself may still be applied."""
