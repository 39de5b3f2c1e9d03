"""Normalisation of query-string, JSON and form inputs into action requests."""

from __future__ import annotations

import math
from typing import Any, Dict, Mapping, Optional

from fastapi import Request

from ..config import SessionConfig
from ..errors import InvalidInput
from ..geometry import ReportingSpace
from ..models import ActionRequest, ActionType

# Field pairs produced by an ``<input type="image">`` submit, in priority order.
IMAGE_SUBMIT_FIELDS = (("image.x", "image.y"), ("0.x", "0.y"))
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
SESSION_HEADER = "x-session-key"


async def read_fields(request: Request) -> Dict[str, Any]:
    """Merge query parameters with a JSON or form body; the query string wins."""

    fields: Dict[str, Any] = dict(request.query_params)
    if request.method not in {"POST", "PUT"}:
        return fields
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        raw = await request.body()
        if not raw.strip():
            return fields
        try:
            body = await request.json()
        except ValueError as exc:
            raise InvalidInput("Malformed JSON body") from exc
        if not isinstance(body, dict):
            raise InvalidInput("JSON body must be an object")
        for key, value in body.items():
            fields.setdefault(key, value)
    elif content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        for key, value in form.multi_items():
            if isinstance(value, str):
                fields.setdefault(key, value)
    return fields


def resolve_session_key(
    config: SessionConfig,
    fields: Mapping[str, Any],
    request: Request,
) -> str:
    """Pick the session key for a request according to ``config.scope``.

    In ``url`` scope a request without ``url`` (scroll, type, hover) names the
    page it acts on through the ``session`` field or header instead.
    """

    if config.scope == "global":
        return config.default_key
    explicit = _text(fields.get("session")) or request.headers.get(SESSION_HEADER)
    if config.scope == "url":
        key = _text(fields.get("url")) or explicit
        if not key:
            raise InvalidInput("Missing url or session parameter")
        return key
    if explicit:
        return explicit
    if request.client is not None:
        return request.client.host
    return config.default_key


def is_hover(fields: Mapping[str, Any]) -> bool:
    return (_text(fields.get("mode")) or "").lower() == "hover"


def build_action(
    action_type: ActionType,
    fields: Mapping[str, Any],
    *,
    session_key: str,
) -> ActionRequest:
    """Build an :class:`ActionRequest`, rejecting unparseable values."""

    if action_type is ActionType.CLICK and is_hover(fields):
        action_type = ActionType.HOVER
    data: Dict[str, Any] = {
        "type": action_type,
        "session_key": session_key,
        "url": _text(fields.get("url")),
        "width": _int_field(fields, "width"),
        "height": _int_field(fields, "height"),
    }
    if action_type in {ActionType.CLICK, ActionType.HOVER}:
        data.update(_pointer_fields(fields))
    elif action_type is ActionType.SCROLL:
        delta = _int_field(fields, "deltaY")
        if delta is None:
            delta = _int_field(fields, "delta_y")
        data["delta_y"] = delta or 0
    elif action_type is ActionType.TYPE:
        text = fields.get("text")
        data["text"] = "" if text is None else str(text)
    return ActionRequest(**data)


def _pointer_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    display_width = _int_field(fields, "display_width")
    display_height = _int_field(fields, "display_height")
    explicit = (_text(fields.get("space")) or "").lower()
    for name_x, name_y in IMAGE_SUBMIT_FIELDS:
        if name_x in fields or name_y in fields:
            return {
                "x": _float_field(fields, name_x),
                "y": _float_field(fields, name_y),
                "space": ReportingSpace.DISPLAY if display_width else ReportingSpace.RAW,
                "display_width": display_width,
                "display_height": display_height,
            }
    if "rx" in fields or "ry" in fields:
        return {
            "x": _float_field(fields, "rx"),
            "y": _float_field(fields, "ry"),
            "space": ReportingSpace.NORMALIZED,
        }
    if explicit:
        try:
            space = ReportingSpace(explicit)
        except ValueError as exc:
            raise InvalidInput(f"Unknown coordinate space: {explicit}") from exc
    elif display_width is not None or display_height is not None:
        space = ReportingSpace.DISPLAY
    else:
        space = ReportingSpace.RAW
    return {
        "x": _float_field(fields, "x"),
        "y": _float_field(fields, "y"),
        "space": space,
        "display_width": display_width,
        "display_height": display_height,
    }


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float_field(fields: Mapping[str, Any], name: str) -> Optional[float]:
    raw = fields.get(name)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, bool):
        raise InvalidInput(f"Invalid value for {name}: {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Invalid value for {name}: {raw!r}") from exc
    if not math.isfinite(value):
        raise InvalidInput(f"Invalid value for {name}: {raw!r}")
    return value


def _int_field(fields: Mapping[str, Any], name: str) -> Optional[int]:
    value = _float_field(fields, name)
    if value is None:
        return None
    return math.floor(value + 0.5)
