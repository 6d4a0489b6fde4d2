"""Settings store port interface."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from macsigner.config import Settings


class SettingsStorePort(Protocol):
    """Port interface for loading and persisting configuration.

    Side effects: Reads/writes the settings file (offline).
    """

    @property
    def path(self) -> Path:
        """Location of the backing settings file."""
        ...

    def load(self) -> Settings:
        """Load settings, creating defaults on first use.

        Raises:
            SettingsIOError: If the file cannot be read
            SettingsParseError: If the file cannot be decoded
        """
        ...

    def save(self, settings: Settings) -> None:
        """Persist ``settings``.

        Raises:
            SettingsIOError: If the file cannot be written
        """
        ...
