"""Filesystem-backed backup and replace implementation."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from macsigner.app.ports import BackupPort
from macsigner.errors import ArtifactIOError, ArtifactNotFoundError
from macsigner.utils.clock import Clock, SystemClock
from macsigner.utils.paths import atomic_write_bytes

logger = logging.getLogger(__name__)

#: Sortable UTC timestamp with second precision used in backup names.
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class FileSystemBackupAdapter(BackupPort):
    """Adapter that backs up files beside the original and replaces them atomically.

    Backups are named ``<path>.backup.<YYYYMMDDHHMMSS>`` (UTC) and are never
    overwritten: a same-second collision fails the backup instead.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def backup_path_for(self, path: Path) -> Path:
        timestamp = self._clock.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        return Path(f"{path}.backup.{timestamp}")

    def backup(self, path: Path) -> Path:
        source = Path(path)
        if not source.is_file():
            raise ArtifactNotFoundError(f"Cannot back up missing file: {source}")

        destination = self.backup_path_for(source)
        created = False
        try:
            with source.open("rb") as src:
                # "xb" refuses to open an existing file, so a backup is never clobbered.
                with destination.open("xb") as dst:
                    created = True
                    shutil.copyfileobj(src, dst)
        except FileExistsError as exc:
            raise ArtifactIOError(f"Backup already exists: {destination}") from exc
        except OSError as exc:
            if created:
                self._discard_partial(destination)
            raise ArtifactIOError(f"Failed to back up {source}: {exc}") from exc

        try:
            shutil.copystat(source, destination)
        except OSError as exc:
            logger.debug("Could not copy metadata to %s: %s", destination, exc)

        logger.info("Created backup: %s", destination)
        return destination

    def replace_with_signed(self, original_path: Path, signed_bytes: bytes) -> Path:
        original = Path(original_path)
        if not original.is_file():
            raise ArtifactNotFoundError(f"Original file does not exist: {original}")

        backup_path = self.backup(original)

        try:
            mode = stat.S_IMODE(original.stat().st_mode)
            atomic_write_bytes(original, signed_bytes, mode=mode)
        except OSError as exc:
            raise ArtifactIOError(
                f"Failed to replace {original} with signed version "
                f"(backup kept at {backup_path}): {exc}"
            ) from exc

        logger.info("Replaced %s with signed version", original)
        return backup_path

    @staticmethod
    def _discard_partial(destination: Path) -> None:
        try:
            os.unlink(destination)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove partial backup %s: %s", destination, exc)
