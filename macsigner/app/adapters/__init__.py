"""Concrete adapters wiring application ports to built-in implementations."""

from __future__ import annotations

from .backup import FileSystemBackupAdapter
from .progress import CallbackProgressReporter, LoggingProgressReporter, NullProgressReporter
from .settings_store import JsonSettingsStore
from .trusted_signing import TrustedSigningGateway

__all__ = [
    "CallbackProgressReporter",
    "FileSystemBackupAdapter",
    "JsonSettingsStore",
    "LoggingProgressReporter",
    "NullProgressReporter",
    "TrustedSigningGateway",
]
