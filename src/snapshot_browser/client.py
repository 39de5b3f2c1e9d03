"""HTTP client for talking to a running snapshot browser service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from .models import ElementDescriptor, ImageArtifact


class ServiceHealth(BaseModel):
    status: str
    session_policy: str
    shared_process: bool
    sessions: List[Dict[str, Any]]


class SnapshotClient:
    """Wrapper around the snapshot browser HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = timeout
        self._transport = transport

    async def render(
        self,
        url: str,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> ImageArtifact:
        return await self._image("/render", {"url": url, "width": width, "height": height})

    async def click(
        self,
        x: float,
        y: float,
        *,
        url: Optional[str] = None,
        display_width: Optional[int] = None,
        display_height: Optional[int] = None,
    ) -> ImageArtifact:
        payload = {
            "url": url,
            "x": x,
            "y": y,
            "display_width": display_width,
            "display_height": display_height,
        }
        return await self._image("/click", payload)

    async def hover(
        self,
        x: float,
        y: float,
        *,
        url: Optional[str] = None,
    ) -> Optional[ElementDescriptor]:
        payload = {"url": url, "x": x, "y": y, "mode": "hover"}
        async with self._client() as client:
            response = await client.post("/click", json=self._payload(payload))
            response.raise_for_status()
            data = response.json()
        if not data.get("tag"):
            return None
        return ElementDescriptor.model_validate(data)

    async def scroll(self, delta_y: int) -> ImageArtifact:
        return await self._image("/scroll", {"deltaY": delta_y})

    async def type_text(self, text: str) -> ImageArtifact:
        return await self._image("/type", {"text": text})

    async def get_health(self) -> ServiceHealth:
        async with self._client() as client:
            response = await client.get("/health")
            response.raise_for_status()
            data = response.json()
        return ServiceHealth.model_validate(data)

    async def close_session(self, key: str) -> None:
        async with self._client() as client:
            response = await client.delete(f"/sessions/{key}")
            response.raise_for_status()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    def _payload(self, values: Dict[str, Any]) -> Dict[str, Any]:
        payload = {key: value for key, value in values.items() if value is not None}
        if self._session:
            payload["session"] = self._session
        return payload

    async def _image(self, path: str, values: Dict[str, Any]) -> ImageArtifact:
        async with self._client() as client:
            response = await client.post(path, json=self._payload(values))
            response.raise_for_status()
        mime_type = response.headers.get("content-type", "application/octet-stream")
        return ImageArtifact(data=response.content, mime_type=mime_type)
