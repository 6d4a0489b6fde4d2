"""Configuration management with Pydantic and XDG base directory support."""

import os
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_config_home() -> Path:
    """Get XDG_CONFIG_HOME directory, defaulting to ~/.config."""
    xdg_config = os.getenv("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config)
    return Path.home() / ".config"


#: Settings that must all be present before any call to the signing service.
IDENTITY_FIELDS = ("tenant_id", "client_id", "client_secret", "endpoint", "certificate_profile")


class Settings(BaseSettings):
    """MacSigner configuration settings.

    Precedence: CLI flag > settings file > environment variable > defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="MACSIGNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Identity and signing endpoint
    tenant_id: str | None = Field(default=None, description="Azure tenant ID")
    client_id: str | None = Field(default=None, description="Azure client (application) ID")
    client_secret: SecretStr | None = Field(default=None, description="Azure client secret")
    endpoint: str | None = Field(default=None, description="Trusted Signing endpoint URL")
    certificate_profile: str | None = Field(
        default=None, description="Certificate profile name used for signing"
    )

    # Presentation bookkeeping
    last_selected_path: str | None = Field(
        default=None, description="Most recently scanned or signed path"
    )

    # Scan policy
    auto_select_signable_files: bool = Field(
        default=True, description="Mark discovered artifacts as selected"
    )
    show_hidden_files: bool = Field(
        default=False, description="Include dot-prefixed files and directories in scans"
    )

    # Concurrency and timing
    max_concurrent_signing_requests: int = Field(
        default=5,
        ge=1,
        description="Upper bound of requests submitting or polling at the same time",
    )
    poll_interval_seconds: float = Field(
        default=5.0, gt=0.0, description="Delay between status polls"
    )
    signing_timeout_seconds: float = Field(
        default=600.0,
        gt=0.0,
        description="Wall-clock budget per request, measured from submission",
    )
    token_refresh_margin_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Refresh the bearer credential when it expires within this window",
    )

    # Transport
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="OAuth2 authority used for the client-credentials exchange",
    )
    token_scope: str = Field(
        default="https://codesigning.azure.net/.default",
        description="Scope requested for the signing service credential",
    )
    http_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Timeout for a single HTTP request"
    )
    max_retries: int = Field(
        default=3, ge=0, description="Retries after a transient remote failure"
    )
    retry_base_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Base delay for exponential back-off"
    )
    circuit_breaker_threshold: int = Field(
        default=5, ge=1, description="Consecutive transient failures before failing fast"
    )

    # Directories
    config_dir: Path | None = Field(
        default=None,
        description="Override config directory (defaults to XDG_CONFIG_HOME/macsigner)",
    )

    def is_configured(self) -> bool:
        """Return True when all five identity/endpoint/profile fields are set."""
        return not self.missing_fields()

    def missing_fields(self) -> list[str]:
        """Names of identity fields that are empty or whitespace."""
        missing: list[str] = []
        for name in IDENTITY_FIELDS:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value is None or not str(value).strip():
                missing.append(name)
        return missing

    def get_client_secret(self) -> str | None:
        """Plain-text client secret, or None when unset."""
        if self.client_secret is None:
            return None
        return self.client_secret.get_secret_value()

    def get_config_dir(self) -> Path:
        """Get the config directory, creating if necessary."""
        config_dir = self.config_dir or get_xdg_config_home() / "macsigner"
        config_dir.mkdir(parents=True, exist_ok=True)
        return config_dir

    def get_settings_path(self) -> Path:
        """Location of the persisted settings file."""
        return self.get_config_dir() / "appsettings.json"

    def get_settings_key_path(self) -> Path:
        """Location of the Fernet key sealing the stored client secret."""
        return self.get_config_dir() / "settings.key"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance (useful for testing)."""
    global _settings
    _settings = settings
