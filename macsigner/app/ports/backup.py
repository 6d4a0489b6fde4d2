"""Backup port interface for safe in-place replacement of artifacts."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class BackupPort(Protocol):
    """Port interface for backing up and replacing local files.

    Side effects: Reads/writes files (offline).
    """

    def backup(self, path: Path) -> Path:
        """Copy ``path`` to a new timestamped backup beside it.

        Args:
            path: File to back up

        Returns:
            Path of the created backup

        Raises:
            ArtifactNotFoundError: If ``path`` does not exist
            ArtifactIOError: If the backup already exists or the copy fails
        """
        ...

    def replace_with_signed(self, original_path: Path, signed_bytes: bytes) -> Path:
        """Back up ``original_path`` then atomically replace its content.

        Args:
            original_path: File to replace
            signed_bytes: Signed content

        Returns:
            Path of the backup taken before the replacement

        Raises:
            ArtifactNotFoundError: If ``original_path`` does not exist
            ArtifactIOError: If the backup or the write fails; the original is
                left untouched
        """
        ...
