"""Command line interface for snapshot-browser."""

from __future__ import annotations

import asyncio
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from .config import ServiceConfig, load_config
from .errors import SnapshotBrowserError
from .factory import build_backend_factory, build_runtime, build_service
from .models import ActionRequest, ActionType, ElementDescriptor, ImageArtifact
from .server.app import create_app

app = typer.Typer(help="Snapshot Browser entry point")

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]
WidthOption = Annotated[Optional[int], typer.Option("--width", help="Viewport width.")]
HeightOption = Annotated[Optional[int], typer.Option("--height", help="Viewport height.")]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("snapshot-browser"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def serve(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Binding address.")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="HTTP port.")] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = None,
    executable_path: Annotated[
        Optional[Path],
        typer.Option("--executable-path", help="Browser executable to launch."),
    ] = None,
    policy: Annotated[
        Optional[str],
        typer.Option("--policy", help="Session policy: persistent or ephemeral."),
    ] = None,
) -> None:
    """Serve the HTTP API."""

    overrides: dict[str, Any] = {}
    if host is not None or port is not None:
        overrides.setdefault("server", {})
        if host is not None:
            overrides["server"]["host"] = host
        if port is not None:
            overrides["server"]["port"] = port
    if headless is not None or executable_path is not None:
        overrides.setdefault("browser", {})
        if headless is not None:
            overrides["browser"]["headless"] = headless
        if executable_path is not None:
            overrides["browser"]["executable_path"] = str(executable_path)
    if policy is not None:
        overrides["session"] = {"policy": policy}

    config = load_config(config_path, env_file=env_file, **overrides)
    typer.echo(f"Serving on http://{config.server.host}:{config.server.port}")
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


@app.command()
def capture(
    url: Annotated[str, typer.Argument(help="Page to render.")],
    output: Annotated[Path, typer.Option("--output", "-o", help="Where to write the image.")],
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    width: WidthOption = None,
    height: HeightOption = None,
) -> None:
    """Render a page once and write the snapshot to a file."""

    config = load_config(config_path, env_file=env_file)
    request = ActionRequest(type=ActionType.RENDER, url=url, width=width, height=height)
    result = _execute(config, request)
    if not isinstance(result, ImageArtifact):
        typer.echo("Error: no image was produced", err=True)
        raise typer.Exit(code=1)
    output.write_bytes(result.data)
    typer.echo(f"Wrote {len(result.data)} bytes ({result.mime_type}) to {output}")


@app.command()
def probe(
    url: Annotated[str, typer.Argument(help="Page to inspect.")],
    x: Annotated[float, typer.Argument(help="Horizontal viewport pixel.")],
    y: Annotated[float, typer.Argument(help="Vertical viewport pixel.")],
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    width: WidthOption = None,
    height: HeightOption = None,
) -> None:
    """Describe the element under a point of a page."""

    config = load_config(config_path, env_file=env_file)
    request = ActionRequest(
        type=ActionType.HOVER,
        url=url,
        x=x,
        y=y,
        width=width,
        height=height,
    )
    result = _execute(config, request)
    console = Console()
    if not isinstance(result, ElementDescriptor):
        console.print("No element at that point.", style="yellow")
        return
    table = Table(show_header=False)
    table.add_row("tag", result.tag)
    table.add_row("text", result.text)
    table.add_row("title", result.title)
    table.add_row("href", result.href or "")
    rect = result.rect
    table.add_row("rect", f"{rect.x:.0f},{rect.y:.0f} {rect.width:.0f}x{rect.height:.0f}")
    console.print(table)


def _execute(config: ServiceConfig, request: ActionRequest) -> Any:
    try:
        return asyncio.run(_run_once(config, request))
    except SnapshotBrowserError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


async def _run_once(config: ServiceConfig, request: ActionRequest) -> Any:
    runtime = build_runtime(config.browser)
    service = build_service(config, build_backend_factory(runtime))
    try:
        return await service.execute(request)
    finally:
        await service.sessions.close_all()
        await runtime.close()


if __name__ == "__main__":
    app()
