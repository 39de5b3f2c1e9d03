from __future__ import annotations

import asyncio

import pytest

from snapshot_browser.errors import InvalidInput, RequestAbandoned
from snapshot_browser.factory import build_service
from snapshot_browser.geometry import ReportingSpace
from snapshot_browser.models import ActionRequest, ActionType, ElementDescriptor, ImageArtifact


@pytest.mark.asyncio
async def test_render_returns_image(farm, service_config):
    service = build_service(service_config, farm)

    result = await service.execute(ActionRequest(type=ActionType.RENDER, url="https://example.com"))

    assert isinstance(result, ImageArtifact)
    assert result.mime_type == "image/png"
    assert result.data


@pytest.mark.asyncio
async def test_click_and_scroll_on_one_key_do_not_interleave(farm, service_config):
    farm.action_delay = 0.05
    service = build_service(service_config, farm)
    await service.execute(ActionRequest(type=ActionType.RENDER, url="https://example.com"))
    farm.log.clear()

    await asyncio.gather(
        service.execute(ActionRequest(type=ActionType.CLICK, x=1, y=1)),
        service.execute(ActionRequest(type=ActionType.SCROLL, delta_y=100)),
    )

    assert [name for _, name in farm.log] == [
        "click",
        "click-done",
        "screenshot",
        "scroll",
        "screenshot",
    ]


@pytest.mark.asyncio
async def test_independent_keys_get_independent_pages(farm, service_config):
    service = build_service(service_config, farm)

    await service.execute(
        ActionRequest(type=ActionType.RENDER, url="https://example.com", session_key="alice")
    )
    await service.execute(
        ActionRequest(type=ActionType.RENDER, url="https://example.org", session_key="bob")
    )

    assert [backend.url for backend in farm.backends] == ["https://example.com", "https://example.org"]


@pytest.mark.parametrize(
    "request_",
    [
        ActionRequest(type=ActionType.RENDER),
        ActionRequest(type=ActionType.CLICK, url="https://example.com"),
        ActionRequest(type=ActionType.HOVER, url="https://example.com", x=1),
        ActionRequest(type=ActionType.CLICK, x=1, y=1, space=ReportingSpace.DISPLAY),
        ActionRequest(type=ActionType.RENDER, url="https://example.com", width=99_999),
    ],
)
@pytest.mark.asyncio
async def test_invalid_requests_are_rejected_before_any_session(farm, service_config, request_):
    service = build_service(service_config, farm)

    with pytest.raises(InvalidInput):
        await service.execute(request_)

    assert farm.backends == []


@pytest.mark.asyncio
async def test_normalized_click_is_translated_against_session_viewport(farm, service_config):
    service = build_service(service_config, farm)

    await service.execute(
        ActionRequest(
            type=ActionType.CLICK,
            url="https://example.com",
            x=0.5,
            y=0.5,
            space=ReportingSpace.NORMALIZED,
        )
    )

    assert ("click", 400, 300) in farm.latest.calls


@pytest.mark.asyncio
async def test_display_space_click_hits_scaled_target(farm, service_config):
    service = build_service(service_config, farm)

    await service.execute(
        ActionRequest(
            type=ActionType.CLICK,
            url="https://example.com",
            x=60,
            y=105,
            space=ReportingSpace.DISPLAY,
            display_width=400,
            display_height=300,
        )
    )

    assert ("click", 120, 210) in farm.latest.calls
    assert farm.latest.url == "https://www.iana.org/domains/example"


@pytest.mark.asyncio
async def test_scroll_keeps_existing_viewport(farm, service_config):
    service = build_service(service_config, farm)
    await service.execute(
        ActionRequest(type=ActionType.RENDER, url="https://example.com", width=1024, height=768)
    )

    await service.execute(ActionRequest(type=ActionType.SCROLL, delta_y=10))

    assert len(farm.backends) == 1
    assert farm.latest.viewport.width == 1024


@pytest.mark.asyncio
async def test_partial_viewport_override_falls_back_per_axis(farm, service_config):
    service = build_service(service_config, farm)

    await service.execute(ActionRequest(type=ActionType.RENDER, url="https://example.com", width=1024))

    assert (farm.latest.viewport.width, farm.latest.viewport.height) == (1024, 600)


@pytest.mark.asyncio
async def test_hover_returns_descriptor(farm, service_config):
    service = build_service(service_config, farm)

    result = await service.execute(
        ActionRequest(type=ActionType.HOVER, url="https://example.com", x=150, y=310)
    )

    assert isinstance(result, ElementDescriptor)
    assert result.tag == "input"


@pytest.mark.asyncio
async def test_abandoned_request_still_applies_its_action(farm, service_config):
    service_config.timing.request_timeout = 0.01
    farm.action_delay = 0.1
    service = build_service(service_config, farm)

    with pytest.raises(RequestAbandoned):
        await service.execute(ActionRequest(type=ActionType.CLICK, url="https://example.com", x=120, y=210))

    await service.drain()

    assert farm.latest.names()[-2:] == ["click-done", "screenshot"]
    assert farm.latest.url == "https://www.iana.org/domains/example"
