"""CLI integration smoke tests."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

import macsigner.cli as cli
from macsigner import __version__
from macsigner.cli import app

IDENTITY_ARGS = [
    "--tenant-id",
    "tenant-123",
    "--client-id",
    "client-456",
    "--client-secret",
    "s3cr3t",
    "--endpoint",
    "https://signing.example.com/api",
    "--profile",
    "release-profile",
]

runner = CliRunner()


def _signing_service(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/oauth2/v2.0/token"):
        return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
    if path == "/api/sign":
        return httpx.Response(202, json={"requestId": "remote-1"})
    if path == "/api/status/remote-1":
        return httpx.Response(200, json={"status": "completed"})
    if path.startswith("/api/download/remote-1/"):
        return httpx.Response(200, content=b"signed " + path.rsplit("/", 1)[-1].encode())
    return httpx.Response(404)


@pytest.fixture
def mocked_service(monkeypatch: pytest.MonkeyPatch) -> None:
    real_bootstrap = cli.bootstrap_application

    def _bootstrap(settings, **kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(_signing_service))
        return real_bootstrap(settings, http_client=client, **kwargs)

    monkeypatch.setattr(cli, "bootstrap_application", _bootstrap)


@pytest.fixture
def build_dir(temp_dir: Path) -> Path:
    root = temp_dir / "build"
    (root / "lib").mkdir(parents=True)
    (root / "app.exe").write_bytes(b"MZ app")
    (root / "lib" / "core.dll").write_bytes(b"MZ core")
    (root / "README.txt").write_text("not signable")
    return root


def test_version_command(override_settings) -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert f"MacSigner version {__version__}" in result.stdout


def test_version_flag(override_settings) -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_scan_json_lists_signable_files(override_settings, build_dir: Path) -> None:
    result = runner.invoke(app, ["scan", str(build_dir), "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["schema_id"] == "scan_results"
    assert payload["schema_version"] == 1
    assert payload["producer"].startswith("macsigner-")
    datetime.fromisoformat(payload["produced_at"])
    assert payload["count"] == 2
    assert sorted(f["name"] for f in payload["files"]) == ["app.exe", "core.dll"]
    assert all(f["status"] == "not_signed" for f in payload["files"])


def test_scan_non_recursive(override_settings, build_dir: Path) -> None:
    result = runner.invoke(app, ["scan", str(build_dir), "--no-recursive"])

    assert result.exit_code == 0, result.output
    assert "Found 1 signable files" in result.stdout
    assert "app.exe" in result.stdout
    assert "core.dll" not in result.stdout


def test_scan_remembers_last_path(override_settings, build_dir: Path) -> None:
    runner.invoke(app, ["scan", str(build_dir)])

    stored = json.loads(override_settings.get_settings_path().read_text())
    assert stored["last_selected_path"] == str(build_dir)


def test_scan_missing_directory_fails(override_settings, temp_dir: Path) -> None:
    result = runner.invoke(app, ["scan", str(temp_dir / "nowhere")])

    assert result.exit_code == 1


def test_sign_without_configuration_lists_missing_flags(override_settings, build_dir: Path) -> None:
    result = runner.invoke(app, ["sign", "--path", str(build_dir)])

    assert result.exit_code == 1
    assert "not properly configured" in result.output
    assert "--client-secret" in result.output
    assert (build_dir / "app.exe").read_bytes() == b"MZ app"


def test_sign_missing_path(override_settings, temp_dir: Path) -> None:
    result = runner.invoke(app, ["sign", "--path", str(temp_dir / "missing"), *IDENTITY_ARGS])

    assert result.exit_code == 1
    assert "Path does not exist" in result.output


def test_sign_unsupported_single_file(override_settings, build_dir: Path) -> None:
    result = runner.invoke(
        app, ["sign", "--path", str(build_dir / "README.txt"), *IDENTITY_ARGS]
    )

    assert result.exit_code == 1
    assert "not supported" in result.output


def test_sign_directory_end_to_end(override_settings, mocked_service, build_dir: Path) -> None:
    result = runner.invoke(app, ["sign", "--path", str(build_dir), "--json", *IDENTITY_ARGS])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["schema_id"] == "sign_result"
    assert payload["state"] == "completed"
    assert payload["remote_request_id"] == "remote-1"
    assert payload["progress_percent"] == 100
    assert {f["status"] for f in payload["files"]} == {"completed"}

    assert (build_dir / "app.exe").read_bytes() == b"signed app.exe"
    assert (build_dir / "lib" / "core.dll").read_bytes() == b"signed core.dll"
    assert [p.read_bytes() for p in build_dir.glob("app.exe.backup.*")] == [b"MZ app"]


def test_sign_single_file_human_output(override_settings, mocked_service, build_dir: Path) -> None:
    result = runner.invoke(app, ["sign", "-p", str(build_dir / "app.exe"), *IDENTITY_ARGS])

    assert result.exit_code == 0, result.output
    assert "app.exe - Signed successfully" in result.stdout
    assert "1/1 files signed successfully" in result.stdout
    assert (build_dir / "lib" / "core.dll").read_bytes() == b"MZ core"


def test_config_set_then_show_masks_secret(override_settings) -> None:
    assert runner.invoke(app, ["config", "set", "tenant-id", "tenant-123"]).exit_code == 0
    result = runner.invoke(app, ["config", "set", "client-secret", "very-secret"])
    assert result.exit_code == 0, result.output
    assert "very-secret" not in result.stdout

    result = runner.invoke(app, ["config", "show", "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["schema_id"] == "settings"
    assert payload["values"]["tenant_id"] == "tenant-123"
    assert payload["values"]["client_secret"] == "********"
    assert payload["configured"] is False
    assert "endpoint" in payload["missing"]
    assert "very-secret" not in override_settings.get_settings_path().read_text()


def test_config_set_rejects_unknown_key(override_settings) -> None:
    result = runner.invoke(app, ["config", "set", "colour", "blue"])

    assert result.exit_code == 1
    assert "Unknown setting" in result.output


def test_config_set_rejects_invalid_value(override_settings) -> None:
    result = runner.invoke(app, ["config", "set", "max-concurrent-signing-requests", "0"])

    assert result.exit_code == 1
    assert "Invalid value" in result.output


def test_doctor_json_reports_missing_configuration(override_settings) -> None:
    result = runner.invoke(app, ["doctor", "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["schema_id"] == "doctor_report"
    checks = {check["name"]: check for check in payload["checks"]}
    assert checks["python_version"]["passed"] is True
    assert checks["settings_file"]["passed"] is True
    assert checks["signing_configuration"]["passed"] is False
    assert payload["all_passed"] is False
