"""MacSigner CLI application with Typer."""

import asyncio
import logging
import platform
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from pydantic import SecretStr, ValidationError

from macsigner import __version__
from macsigner.app.adapters import (
    CallbackProgressReporter,
    JsonSettingsStore,
    NullProgressReporter,
)
from macsigner.app.adapters.settings_store import PERSISTED_FIELDS
from macsigner.app.ports import ProgressReporter, ProgressSnapshot
from macsigner.bootstrap import bootstrap_application, create_settings_store
from macsigner.config import IDENTITY_FIELDS, Settings, get_settings, set_settings
from macsigner.errors import MacSignerError, SettingsIOError, SettingsParseError
from macsigner.models import Artifact, RequestState, SigningRequest, SigningStatus
from macsigner.scan import is_signable, scan_directory, validate_file
from macsigner.utils.cli_output import json_response

if TYPE_CHECKING:
    from macsigner.bootstrap import ApplicationContainer

app = typer.Typer(
    name="macsigner",
    help="Scan for Windows and macOS binaries and sign them with Azure Trusted Signing",
    add_completion=True,
    no_args_is_help=True,
)
config_app = typer.Typer(help="Show and update stored settings")
app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

#: Flag names shown when identity settings are incomplete.
_IDENTITY_FLAGS = {
    "tenant_id": "--tenant-id     Azure tenant ID",
    "client_id": "--client-id     Azure client ID",
    "client_secret": "--client-secret Azure client secret",
    "endpoint": "--endpoint      Trusted Signing endpoint",
    "certificate_profile": "--profile       Certificate profile name",
}

_STATUS_ICONS = {
    SigningStatus.COMPLETED: "✅",
    SigningStatus.FAILED: "❌",
    SigningStatus.CANCELLED: "⚠️ ",
}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"MacSigner version {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _fail(message: str, *, code: int = 1) -> typer.Exit:
    typer.secho(f"❌ Error: {message}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


def _load_settings(**overrides: Any) -> tuple[Settings, JsonSettingsStore]:
    """Resolve settings as flags > settings file > environment > defaults."""
    store = create_settings_store(get_settings())
    try:
        settings = store.load()
    except MacSignerError as exc:
        raise _fail(str(exc)) from exc

    updates = {name: value for name, value in overrides.items() if value not in (None, "")}
    if "client_secret" in updates:
        updates["client_secret"] = SecretStr(updates["client_secret"])
    if updates:
        settings = settings.model_copy(update=updates)

    set_settings(settings)
    return settings, store


def _remember_path(store: JsonSettingsStore, path: Path) -> None:
    try:
        store.remember_path(path)
    except (SettingsIOError, SettingsParseError) as exc:
        logger.warning("Could not record last selected path: %s", exc)


def _echo_progress(request_id: str, snapshot: ProgressSnapshot) -> None:
    if snapshot.state is RequestState.POLLING:
        typer.echo(f"🔄 Status: {snapshot.status.value}")
    elif snapshot.state in (RequestState.AUTHENTICATING, RequestState.SUBMITTING):
        typer.echo(f"⏳ {snapshot.message}...")
    elif snapshot.state is RequestState.WAITING:
        typer.echo("⏳ Waiting for a free signing slot...")


def _artifact_payload(artifact: Artifact) -> dict[str, Any]:
    return {
        "name": artifact.name,
        "path": str(artifact.path),
        "size_bytes": artifact.size_bytes,
        "status": artifact.status.value,
        "selected": artifact.selected,
        "signing_request_id": artifact.signing_request_id,
        "signed_at": artifact.signed_at.isoformat() if artifact.signed_at else None,
        "error_message": artifact.error_message,
    }


def _request_payload(request: SigningRequest) -> dict[str, Any]:
    return {
        "request_id": request.request_id,
        "remote_request_id": request.remote_request_id,
        "state": request.state.value,
        "status": request.status.value,
        "error_kind": request.error_kind,
        "error_message": request.error_message,
        "processed_count": request.processed_count,
        "completed_count": request.completed_count,
        "total_count": request.total_count,
        "progress_percent": request.progress_percent,
        "files": [_artifact_payload(artifact) for artifact in request.files],
    }


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """MacSigner - digital code signing with Azure Trusted Signing."""


@app.command("version")
def version() -> None:
    """Show version and exit."""
    version_callback(True)


@app.command("scan")
def scan(
    path: Annotated[Path, typer.Argument(help="Directory or file to scan")],
    recursive: Annotated[
        bool,
        typer.Option("--recursive/--no-recursive", help="Scan directories recursively"),
    ] = True,
    show_hidden: Annotated[
        bool | None,
        typer.Option("--show-hidden/--hide-hidden", help="Include dot-prefixed entries"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """List signable files without contacting the signing service.

    Example:
        macsigner scan ./build
        macsigner scan ./build --no-recursive --json
    """
    _configure_logging(verbose)
    settings, store = _load_settings()
    hidden = settings.show_hidden_files if show_hidden is None else show_hidden

    try:
        artifacts = scan_directory(
            path.expanduser(),
            recursive=recursive,
            show_hidden=hidden,
            auto_select=settings.auto_select_signable_files,
        )
    except MacSignerError as exc:
        raise _fail(str(exc)) from exc

    _remember_path(store, path.expanduser().absolute())

    if json_output:
        typer.echo(
            json_response(
                "scan_results",
                1,
                root=str(path.expanduser().absolute()),
                recursive=recursive,
                show_hidden=hidden,
                count=len(artifacts),
                files=[_artifact_payload(artifact) for artifact in artifacts],
            )
        )
        return

    if not artifacts:
        typer.secho("No signable files found.", fg=typer.colors.YELLOW)
        return

    typer.secho(f"Found {len(artifacts)} signable files:", fg=typer.colors.GREEN)
    for artifact in artifacts:
        typer.echo(f"   • {artifact.name} ({artifact.formatted_size})  {artifact.path}")


async def _scan_and_sign(
    container: "ApplicationContainer",
    target: Path,
    *,
    recursive: bool,
    show_hidden: bool,
    quiet: bool,
) -> tuple[list[Artifact], SigningRequest | None]:
    try:
        artifacts = await container.orchestrator.scan(
            target, recursive=recursive, show_hidden=show_hidden
        )
        if not artifacts:
            return artifacts, None

        # Everything found under the given path is signed.
        for artifact in artifacts:
            artifact.selected = True

        if not quiet:
            typer.secho(f"✅ Found {len(artifacts)} signable files:", fg=typer.colors.GREEN)
            for artifact in artifacts:
                typer.echo(f"   • {artifact.name} ({artifact.formatted_size})")
            typer.echo()

        request = await container.orchestrator.sign(artifacts)
        return artifacts, request
    finally:
        await container.aclose()


@app.command("sign")
def sign(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Path to the directory or file to sign"),
    ],
    tenant_id: Annotated[
        str | None,
        typer.Option("--tenant-id", "-t", help="Azure tenant ID"),
    ] = None,
    client_id: Annotated[
        str | None,
        typer.Option("--client-id", "-c", help="Azure client ID"),
    ] = None,
    client_secret: Annotated[
        str | None,
        typer.Option("--client-secret", "-s", help="Azure client secret"),
    ] = None,
    endpoint: Annotated[
        str | None,
        typer.Option("--endpoint", "-e", help="Trusted Signing endpoint URL"),
    ] = None,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-r", help="Certificate profile name"),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive/--no-recursive", help="Scan directories recursively"),
    ] = True,
    show_hidden: Annotated[
        bool | None,
        typer.Option("--show-hidden/--hide-hidden", help="Include dot-prefixed entries"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", min=1.0, help="Seconds to wait for the service to finish"),
    ] = None,
    poll_interval: Annotated[
        float | None,
        typer.Option("--poll-interval", min=0.1, help="Seconds between status checks"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the final request as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Sign executable files using Azure Trusted Signing.

    Exits 0 only when every file found was signed and replaced.

    Example:
        macsigner sign -p ./build/bin
        macsigner sign -p app.exe -t TENANT -c CLIENT -s SECRET -e URL -r PROFILE
    """
    _configure_logging(verbose)
    settings, store = _load_settings(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        endpoint=endpoint,
        certificate_profile=profile,
        signing_timeout_seconds=timeout,
        poll_interval_seconds=poll_interval,
    )

    if not settings.is_configured():
        typer.secho(
            "❌ Error: Azure Trusted Signing is not properly configured.",
            fg=typer.colors.RED,
            err=True,
        )
        typer.echo("Please provide the missing parameters or store them with 'macsigner config set':", err=True)
        for name in settings.missing_fields():
            typer.echo(f"  {_IDENTITY_FLAGS[name]}", err=True)
        raise typer.Exit(code=1)

    target = path.expanduser().absolute()
    if not target.exists():
        raise _fail(f"Path does not exist: {target}")

    if target.is_file():
        if not is_signable(target):
            typer.secho(
                f"⚠️  Warning: File type not supported for signing: {target}",
                fg=typer.colors.YELLOW,
                err=True,
            )
            raise typer.Exit(code=1)
        try:
            validate_file(target)
        except MacSignerError as exc:
            raise _fail(str(exc)) from exc

    _remember_path(store, target)

    if not json_output:
        typer.secho("MacSigner CLI - Digital Code Signing Tool", bold=True)
        typer.echo(f"📁 Scanning path: {target}")
        typer.echo(f"🔄 Recursive scan: {recursive}")

    reporter: ProgressReporter = (
        NullProgressReporter() if json_output else CallbackProgressReporter(_echo_progress)
    )

    container = bootstrap_application(settings, settings_store=store, reporter=reporter)
    hidden = settings.show_hidden_files if show_hidden is None else show_hidden

    try:
        artifacts, request = asyncio.run(
            _scan_and_sign(
                container,
                target,
                recursive=recursive,
                show_hidden=hidden,
                quiet=json_output,
            )
        )
    except MacSignerError as exc:
        if json_output and exc.request is not None:
            typer.echo(json_response("sign_result", 1, **_request_payload(exc.request)))
        raise _fail(str(exc)) from exc

    if request is None:
        raise _fail("No signable files found.")

    if json_output:
        typer.echo(json_response("sign_result", 1, **_request_payload(request)))
    else:
        typer.echo()
        for artifact in request.files:
            icon = _STATUS_ICONS.get(artifact.status, "•")
            if artifact.status is SigningStatus.COMPLETED:
                typer.echo(f"{icon} {artifact.name} - Signed successfully")
            else:
                detail = artifact.error_message or artifact.status.value
                typer.echo(f"{icon} {artifact.name} - {detail}")
        typer.echo()

    succeeded = request.state is RequestState.COMPLETED and request.all_succeeded()
    if not json_output:
        summary = (
            f"{request.completed_count}/{request.total_count} files signed successfully."
        )
        if succeeded:
            typer.secho(f"🎉 Signing complete! {summary}", fg=typer.colors.GREEN, bold=True)
        else:
            typer.secho(
                f"Signing finished with errors: {request.error_message or summary}",
                fg=typer.colors.RED,
                err=True,
            )
    if not succeeded:
        raise typer.Exit(code=1)


@config_app.command("show")
def config_show(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output settings as JSON"),
    ] = False,
) -> None:
    """Show stored settings (the client secret is masked)."""
    settings, store = _load_settings()

    values: dict[str, Any] = {name: getattr(settings, name) for name in PERSISTED_FIELDS}
    values["client_secret"] = "********" if settings.get_client_secret() else None

    if json_output:
        typer.echo(
            json_response(
                "settings",
                1,
                settings_path=str(store.path),
                configured=settings.is_configured(),
                missing=settings.missing_fields(),
                values=values,
            )
        )
        return

    typer.secho(f"Settings file: {store.path}", bold=True)
    for name in (*IDENTITY_FIELDS, *(f for f in PERSISTED_FIELDS if f not in IDENTITY_FIELDS)):
        value = values.get(name)
        typer.echo(f"  {name:<32} {value if value is not None else '(not set)'}")
    if settings.is_configured():
        typer.secho("Signing service is configured.", fg=typer.colors.GREEN)
    else:
        typer.secho(
            f"Missing: {', '.join(settings.missing_fields())}", fg=typer.colors.YELLOW
        )


@config_app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Setting name, e.g. tenant-id")],
    value: Annotated[str, typer.Argument(help="New value")],
) -> None:
    """Store one setting in the settings file."""
    name = key.strip().replace("-", "_")
    allowed = {"client_secret", *PERSISTED_FIELDS}
    if name not in allowed:
        raise _fail(f"Unknown setting '{key}'. Choose from: {', '.join(sorted(allowed))}")

    settings, store = _load_settings()
    try:
        updated = Settings.model_validate({**settings.model_dump(), name: value})
    except ValidationError as exc:
        raise _fail(f"Invalid value for {name}: {exc.errors()[0]['msg']}") from exc

    try:
        store.save(updated)
    except MacSignerError as exc:
        raise _fail(str(exc)) from exc

    shown = "********" if name == "client_secret" else getattr(updated, name)
    typer.secho(f"✅ {name} = {shown}", fg=typer.colors.GREEN)


@app.command("doctor")
def doctor(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
) -> None:
    """Run health checks and report configuration status.

    Example:
        macsigner doctor
        macsigner doctor --json
    """
    checks: list[dict[str, str | bool]] = []
    all_passed = True

    def add_check(name: str, passed: bool, message: str, suggestion: str = "") -> None:
        nonlocal all_passed
        if not passed:
            all_passed = False
        checks.append({
            "name": name,
            "passed": passed,
            "message": message,
            "suggestion": suggestion,
        })

    py_ok = sys.version_info >= (3, 11)
    add_check(
        "python_version",
        py_ok,
        f"Python {platform.python_version()}",
        "MacSigner requires Python 3.11+" if not py_ok else "",
    )

    settings: Settings | None = None
    store = create_settings_store(get_settings())
    try:
        settings = store.load()
        add_check("settings_file", True, f"Settings file: {store.path}")
    except MacSignerError as exc:
        add_check(
            "settings_file",
            False,
            f"Settings file unreadable: {exc}",
            f"Fix or remove {store.path}",
        )

    if settings is not None:
        missing = settings.missing_fields()
        add_check(
            "signing_configuration",
            not missing,
            "Signing service configured"
            if not missing
            else f"Missing settings: {', '.join(missing)}",
            "Set them with: macsigner config set <name> <value>" if missing else "",
        )

        endpoint = settings.endpoint or ""
        if endpoint:
            secure = endpoint.lower().startswith("https://")
            add_check(
                "endpoint_scheme",
                secure,
                f"Endpoint: {endpoint}",
                "Use an https:// endpoint" if not secure else "",
            )

    if json_output:
        typer.echo(json_response("doctor_report", 1, all_passed=all_passed, checks=checks))
        if not all_passed:
            raise typer.Exit(code=1)
        return

    typer.echo()
    typer.secho("🩺 MacSigner Doctor", fg=typer.colors.CYAN, bold=True)
    typer.secho("=" * 40, fg=typer.colors.CYAN)
    typer.echo()
    for check in checks:
        icon = "✓" if check["passed"] else "✗"
        color = typer.colors.GREEN if check["passed"] else typer.colors.RED
        typer.secho(f"  {icon} {check['message']}", fg=color)
        if check.get("suggestion") and not check["passed"]:
            typer.secho(f"    → {check['suggestion']}", fg=typer.colors.YELLOW)

    typer.echo()
    if all_passed:
        typer.secho("All checks passed! ✓", fg=typer.colors.GREEN, bold=True)
    else:
        typer.secho("Some checks failed. See suggestions above.", fg=typer.colors.RED)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
