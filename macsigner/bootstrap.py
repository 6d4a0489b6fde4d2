"""Application bootstrap wiring ports, adapters, and services."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from macsigner.app import SigningOrchestrator
from macsigner.app.adapters import (
    FileSystemBackupAdapter,
    JsonSettingsStore,
    LoggingProgressReporter,
    TrustedSigningGateway,
)
from macsigner.app.ports import BackupPort, ProgressReporter, SigningGatewayPort
from macsigner.config import Settings, get_settings
from macsigner.utils.clock import Clock, SystemClock


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates wired services and adapters for the CLI layer."""

    settings: Settings
    settings_store: JsonSettingsStore
    gateway: SigningGatewayPort
    backup: BackupPort
    reporter: ProgressReporter
    orchestrator: SigningOrchestrator

    async def aclose(self) -> None:
        await self.gateway.aclose()


def create_settings_store(settings: Settings | None = None) -> JsonSettingsStore:
    """Settings store rooted in the configured config directory.

    ``settings`` supplies environment-derived defaults for values the file
    does not hold.
    """
    base = settings or get_settings()
    return JsonSettingsStore(
        base.get_settings_path(),
        key_path=base.get_settings_key_path(),
        defaults=base,
    )


def bootstrap_application(
    settings: Settings | None = None,
    *,
    settings_store: JsonSettingsStore | None = None,
    reporter: ProgressReporter | None = None,
    http_client: httpx.AsyncClient | None = None,
    clock: Clock | None = None,
) -> ApplicationContainer:
    """Instantiate adapters and services for CLI consumption."""

    active_settings = settings or get_settings()
    active_clock = clock or SystemClock()

    gateway = TrustedSigningGateway(
        active_settings,
        http_client=http_client,
        clock=active_clock,
    )
    backup = FileSystemBackupAdapter(clock=active_clock)
    active_reporter = reporter or LoggingProgressReporter()

    orchestrator = SigningOrchestrator(
        settings=active_settings,
        gateway=gateway,
        backup=backup,
        reporter=active_reporter,
        clock=active_clock,
    )

    return ApplicationContainer(
        settings=active_settings,
        settings_store=settings_store or create_settings_store(active_settings),
        gateway=gateway,
        backup=backup,
        reporter=active_reporter,
        orchestrator=orchestrator,
    )
