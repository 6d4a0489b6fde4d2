"""JSON settings file with a Fernet-sealed client secret."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from macsigner.app.ports import SettingsStorePort
from macsigner.config import Settings
from macsigner.errors import SettingsIOError, SettingsParseError
from macsigner.utils.crypto import load_or_create_fernet_key, open_secret, seal_secret
from macsigner.utils.paths import atomic_write_bytes

logger = logging.getLogger(__name__)

#: Fields written to ``appsettings.json``. Directory overrides and transport
#: tuning stay in the environment.
PERSISTED_FIELDS = (
    "tenant_id",
    "client_id",
    "endpoint",
    "certificate_profile",
    "last_selected_path",
    "auto_select_signable_files",
    "show_hidden_files",
    "max_concurrent_signing_requests",
    "poll_interval_seconds",
    "signing_timeout_seconds",
)

SEALED_SECRET_KEY = "client_secret_sealed"


class JsonSettingsStore(SettingsStorePort):
    """Persist settings as JSON beside a 0600 Fernet key.

    Values read from the file take precedence over ``defaults`` (which
    already reflect environment variables).
    """

    def __init__(
        self,
        path: Path,
        *,
        key_path: Path | None = None,
        defaults: Settings | None = None,
    ) -> None:
        self._path = Path(path)
        self._key_path = Path(key_path) if key_path else self._path.with_name("settings.key")
        self._defaults = defaults

    @property
    def path(self) -> Path:
        return self._path

    @property
    def key_path(self) -> Path:
        return self._key_path

    def load(self) -> Settings:
        defaults = self._defaults or Settings()

        if not self._path.exists():
            logger.info("Settings file not found, creating default settings at %s", self._path)
            self.save(defaults)
            return defaults

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SettingsIOError(f"Cannot read settings file {self._path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SettingsParseError(f"Settings file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise SettingsParseError(f"Settings file {self._path} must contain a JSON object")

        values: dict[str, Any] = {
            name: data[name] for name in PERSISTED_FIELDS if name in data
        }
        sealed = data.get(SEALED_SECRET_KEY)
        if sealed:
            try:
                values["client_secret"] = open_secret(str(sealed), key=self._read_key())
            except ValueError as exc:
                raise SettingsParseError(
                    f"Client secret in {self._path} cannot be decrypted: {exc}"
                ) from exc

        try:
            settings = Settings.model_validate({**defaults.model_dump(), **values})
        except ValidationError as exc:
            raise SettingsParseError(f"Invalid value in {self._path}: {exc}") from exc

        logger.debug("Settings loaded from %s", self._path)
        return settings

    def save(self, settings: Settings) -> None:
        data: dict[str, Any] = {name: getattr(settings, name) for name in PERSISTED_FIELDS}

        secret = settings.get_client_secret()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if secret:
                data[SEALED_SECRET_KEY] = seal_secret(secret, key=self._read_key())
            payload = json.dumps(data, indent=2, sort_keys=True) + "\n"
            atomic_write_bytes(self._path, payload.encode("utf-8"), mode=0o600)
        except SettingsIOError:
            raise
        except OSError as exc:
            raise SettingsIOError(f"Cannot write settings file {self._path}: {exc}") from exc

        logger.info("Settings saved to %s", self._path)

    def remember_path(self, path: Path | str) -> Settings:
        """Record ``path`` as the most recently used location and persist it."""
        settings = self.load()
        updated = settings.model_copy(update={"last_selected_path": str(path)})
        self.save(updated)
        return updated

    def _read_key(self) -> bytes:
        try:
            return load_or_create_fernet_key(self._key_path)
        except OSError as exc:
            raise SettingsIOError(f"Cannot access settings key {self._key_path}: {exc}") from exc
