"""Pytest configuration and fixtures."""

import gc
import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from macsigner.config import Settings
from macsigner.models import Artifact
from tests.fakes import FakeClock


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        gc.collect()
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def configured_settings(temp_dir: Path) -> Settings:
    """Fully configured settings isolated to ``temp_dir``."""
    return Settings(
        tenant_id="tenant-123",
        client_id="client-456",
        client_secret="s3cr3t",
        endpoint="https://signing.example.com/api",
        certificate_profile="release-profile",
        config_dir=temp_dir / "appconfig",
        poll_interval_seconds=5.0,
        signing_timeout_seconds=600.0,
        max_retries=2,
        retry_base_delay_seconds=0.5,
    )


@pytest.fixture
def override_settings(temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide isolated, unconfigured MacSigner settings scoped to tests."""

    import macsigner.config as config_module

    original_settings = getattr(config_module, "_settings", None)

    config_dir = temp_dir / "appconfig"
    config_dir.mkdir(parents=True, exist_ok=True)

    settings = config_module.Settings(config_dir=config_dir)
    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings


@pytest.fixture
def make_artifacts(temp_dir: Path) -> Callable[..., list[Artifact]]:
    """Create signable files on disk and return artifacts for them."""

    def _make(*names: str, content: bytes = b"MZ unsigned") -> list[Artifact]:
        bin_dir = temp_dir / "bin"
        bin_dir.mkdir(exist_ok=True)
        artifacts = []
        for name in names:
            path = bin_dir / name
            path.write_bytes(content + name.encode())
            artifacts.append(Artifact.from_path(path))
        return artifacts

    return _make
