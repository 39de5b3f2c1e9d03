"""FastAPI application exposing the snapshot browser over HTTP."""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from fastapi.templating import Jinja2Templates

from ..browser.base import BackendFactory
from ..config import ServiceConfig
from ..errors import InvalidInput, RequestAbandoned, SnapshotBrowserError
from ..factory import build_backend_factory, build_display, build_runtime, build_service
from ..models import ActionRequest, ActionType, ElementDescriptor, ImageArtifact
from ..service import SnapshotService
from .params import build_action, is_hover, read_fields, resolve_session_key

LOGGER = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

GET_POST = ["GET", "POST"]


def create_app(
    config: Optional[ServiceConfig] = None,
    *,
    backend_factory: Optional[BackendFactory] = None,
) -> FastAPI:
    """Build the application; Playwright is used unless ``backend_factory`` is given."""

    config = config or ServiceConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = None
        display = None
        factory = backend_factory
        if factory is None:
            display = build_display(config)
            display.start()
            runtime = build_runtime(config.browser)
            factory = build_backend_factory(runtime)
        service = build_service(config, factory)
        app.state.service = service
        try:
            yield
        finally:
            await service.drain()
            await service.sessions.close_all()
            if runtime is not None:
                await runtime.close()
            if display is not None:
                display.stop()

    app = FastAPI(title="Snapshot Browser", lifespan=lifespan)
    router = APIRouter()

    async def _action(
        request: Request,
        action_type: ActionType,
        fields: Optional[Dict[str, Any]] = None,
    ) -> ActionRequest:
        if fields is None:
            fields = await read_fields(request)
        key = resolve_session_key(config.session, fields, request)
        return build_action(action_type, fields, session_key=key)

    async def _hover(request: Request, fields: Dict[str, Any]) -> JSONResponse:
        try:
            action = await _action(request, ActionType.HOVER, fields)
            result = await _service(request).execute(action)
        except InvalidInput as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        except RequestAbandoned as exc:
            LOGGER.debug("hover abandoned: %s", exc)
            return JSONResponse({"tag": None})
        except SnapshotBrowserError as exc:
            LOGGER.error("hover failed: %s", exc)
            return JSONResponse({"error": str(exc)}, status_code=500)
        if not isinstance(result, ElementDescriptor):
            return JSONResponse({"tag": None})
        return JSONResponse(result.model_dump())

    async def _image_route(request: Request, action_type: ActionType) -> Response:
        try:
            fields = await read_fields(request)
            if action_type is ActionType.CLICK and is_hover(fields):
                return await _hover(request, fields)
            action = await _action(request, action_type, fields)
            result = await _service(request).execute(action)
        except InvalidInput as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except SnapshotBrowserError as exc:
            LOGGER.error("%s failed: %s", action_type.value, exc)
            return PlainTextResponse(f"Render error: {exc}", status_code=500)
        if not isinstance(result, ImageArtifact):
            return PlainTextResponse("Render error: no image produced", status_code=500)
        return Response(content=result.data, media_type=result.mime_type)

    @router.api_route("/render", methods=GET_POST)
    async def render(request: Request) -> Response:
        return await _image_route(request, ActionType.RENDER)

    @router.api_route("/click", methods=GET_POST)
    async def click(request: Request) -> Response:
        return await _image_route(request, ActionType.CLICK)

    @router.api_route("/scroll", methods=GET_POST)
    async def scroll(request: Request) -> Response:
        return await _image_route(request, ActionType.SCROLL)

    @router.api_route("/type", methods=GET_POST)
    async def type_text(request: Request) -> Response:
        return await _image_route(request, ActionType.TYPE)

    @router.get("/view", response_class=HTMLResponse)
    async def view(request: Request) -> Response:
        try:
            action = await _action(request, ActionType.RENDER)
            result = await _service(request).execute(action)
        except InvalidInput as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except SnapshotBrowserError as exc:
            LOGGER.error("view failed: %s", exc)
            return PlainTextResponse(f"Render error: {exc}", status_code=500)
        if not isinstance(result, ImageArtifact):
            return PlainTextResponse("Render error: no image produced", status_code=500)
        viewport = action.viewport(config.viewport.default)
        encoded = base64.b64encode(result.data).decode("ascii")
        return templates.TemplateResponse(
            request,
            "view.html",
            {
                "url": action.url,
                "width": viewport.width,
                "height": viewport.height,
                "session": None if config.session.scope == "global" else action.session_key,
                "image_src": f"data:{result.mime_type};base64,{encoded}",
            },
        )

    @router.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        return {
            "status": "ok",
            "session_policy": config.session.policy,
            "shared_process": config.browser.shared_process,
            "sessions": _service(request).sessions.describe(),
        }

    @router.delete("/sessions/{key}")
    async def close_session(request: Request, key: str) -> JSONResponse:
        closed = await _service(request).sessions.close(key)
        if not closed:
            return JSONResponse({"error": "Session not found"}, status_code=404)
        return JSONResponse({"status": "closed", "key": key})

    app.include_router(router)
    return app


def _service(request: Request) -> SnapshotService:
    return request.app.state.service
