"""Configuration models for the snapshot browser."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidInput
from .geometry import ViewportSize


class BrowserConfig(BaseModel):
    """Settings for the rendering backend."""

    executable_path: Optional[Path] = None
    headless: bool = True
    sandbox: bool = False
    extra_args: list[str] = Field(default_factory=list)
    shared_process: bool = Field(
        default=True,
        description="Share one browser process between sessions (one context each).",
    )
    virtual_display: bool = Field(
        default=False,
        description="Start a virtual X display for headed browsers.",
    )

    def launch_args(self) -> list[str]:
        args = ["--disable-dev-shm-usage"]
        if not self.sandbox:
            args.extend(["--no-sandbox", "--disable-setuid-sandbox"])
        args.extend(self.extra_args)
        return args


class ViewportConfig(BaseModel):
    """Canonical viewport used for every session unless a request overrides it."""

    width: int = Field(default=800, gt=0)
    height: int = Field(default=600, gt=0)
    max_width: int = Field(default=4096, gt=0)
    max_height: int = Field(default=4096, gt=0)

    @property
    def default(self) -> ViewportSize:
        return ViewportSize(self.width, self.height)

    def check(self, size: ViewportSize) -> ViewportSize:
        if size.width > self.max_width or size.height > self.max_height:
            raise InvalidInput(
                f"Viewport {size.width}x{size.height} exceeds "
                f"{self.max_width}x{self.max_height}"
            )
        return size


class TimingConfig(BaseModel):
    """Settle delays and timeouts, in seconds."""

    click_settle: float = Field(default=0.4, ge=0)
    scroll_settle: float = Field(default=0.2, ge=0)
    type_settle: float = Field(default=0.3, ge=0)
    click_press_delay: float = Field(default=0.05, ge=0)
    navigation_timeout: float = Field(default=30.0, gt=0)
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"
    request_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Abandon a request after this many seconds; the action still completes.",
    )


class SnapshotConfig(BaseModel):
    """Image encoding settings."""

    format: Literal["jpeg", "png"] = "jpeg"
    quality: int = Field(default=80, ge=1, le=100)

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"


class SessionConfig(BaseModel):
    """Session lifecycle and keying policy."""

    policy: Literal["persistent", "ephemeral"] = "persistent"
    navigation: Literal["always", "on_change"] = "always"
    scope: Literal["global", "client", "url"] = "global"
    default_key: str = "default"
    max_sessions: int = Field(
        default=16,
        ge=1,
        description="Live sessions kept at once; the least recently used idle one is closed first.",
    )


class HoverConfig(BaseModel):
    text_limit: int = Field(default=300, ge=0)
    move_pointer: bool = False


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)


class ServiceConfig(BaseSettings):
    """Top-level configuration for the snapshot browser service."""

    model_config = SettingsConfigDict(
        env_prefix="SNAPSHOT_BROWSER_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    hover: HoverConfig = Field(default_factory=HoverConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> ServiceConfig:
    """Load configuration from an optional YAML file, the environment and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = ServiceConfig(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return ServiceConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
