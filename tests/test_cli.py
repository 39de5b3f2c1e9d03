from __future__ import annotations

from typer.testing import CliRunner

from snapshot_browser import cli
from snapshot_browser.cli import app
from snapshot_browser.errors import BackendUnavailable


class DummyRuntime:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _patch_backend(monkeypatch, farm) -> DummyRuntime:
    runtime = DummyRuntime()
    monkeypatch.setattr(cli, "build_runtime", lambda config: runtime)
    monkeypatch.setattr(cli, "build_backend_factory", lambda rt: farm)
    return runtime


def test_capture_writes_snapshot(monkeypatch, tmp_path, farm):
    runtime = _patch_backend(monkeypatch, farm)
    output = tmp_path / "page.jpg"

    result = CliRunner().invoke(app, ["capture", "https://example.com", "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert output.read_bytes().startswith(b"jpeg:https://example.com")
    assert "image/jpeg" in result.output
    assert runtime.closed
    assert farm.latest.stopped


def test_capture_respects_viewport_options(monkeypatch, tmp_path, farm):
    _patch_backend(monkeypatch, farm)

    result = CliRunner().invoke(
        app,
        ["capture", "https://example.com", "-o", str(tmp_path / "out.jpg"), "--width", "1024"],
    )

    assert result.exit_code == 0, result.output
    assert (farm.latest.viewport.width, farm.latest.viewport.height) == (1024, 600)


def test_probe_prints_element_table(monkeypatch, farm):
    _patch_backend(monkeypatch, farm)

    result = CliRunner().invoke(app, ["probe", "https://example.com", "120", "210"])

    assert result.exit_code == 0, result.output
    assert "https://www.iana.org/domains/example" in result.output
    assert "100,200 150x20" in result.output


def test_probe_on_empty_area(monkeypatch, farm):
    _patch_backend(monkeypatch, farm)

    result = CliRunner().invoke(app, ["probe", "https://example.com", "5", "5"])

    assert result.exit_code == 0
    assert "No element at that point." in result.output


def test_backend_failure_exits_non_zero(monkeypatch, tmp_path, farm):
    runtime = _patch_backend(monkeypatch, farm)
    farm.launch_error = BackendUnavailable("no renderer")

    result = CliRunner().invoke(app, ["capture", "https://example.com", "-o", str(tmp_path / "x.jpg")])

    assert result.exit_code == 1
    assert "no renderer" in result.output
    assert runtime.closed


def test_serve_applies_overrides(monkeypatch, tmp_path):
    captured: dict[str, object] = {}

    def fake_create_app(config):
        captured["config"] = config
        return "app"

    def fake_run(application, *, host, port):
        captured["run"] = (application, host, port)

    monkeypatch.setattr(cli, "create_app", fake_create_app)
    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    config_path = tmp_path / "config.yaml"
    config_path.write_text("viewport:\n  width: 1280\n")

    result = CliRunner().invoke(
        app,
        ["serve", "--config", str(config_path), "--port", "8080", "--headed", "--policy", "ephemeral"],
    )

    assert result.exit_code == 0, result.output
    config = captured["config"]
    assert config.viewport.width == 1280
    assert config.server.port == 8080
    assert config.browser.headless is False
    assert config.session.policy == "ephemeral"
    assert captured["run"] == ("app", "0.0.0.0", 8080)


def test_version_command():
    result = CliRunner().invoke(app, ["version"])

    assert result.exit_code == 0
    assert result.output.strip()
