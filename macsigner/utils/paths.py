"""Path utilities for directory walking and durable file writes."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


def is_hidden_name(name: str) -> bool:
    """Return True for dot-prefixed entry names."""
    return name.startswith(".")


def find_files(
    root: Path,
    *,
    recursive: bool = True,
    include_hidden: bool = False,
    follow_symlinks: bool = False,
) -> Iterator[Path]:
    """Yield regular files under ``root``.

    Hidden entries (dot-prefixed files and directories) are skipped unless
    ``include_hidden``. Unreadable directories are logged and skipped.
    Symlinks are skipped unless ``follow_symlinks``.
    """
    if not root.is_dir():
        return

    def _on_error(exc: OSError) -> None:
        logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc)

    if not recursive:
        try:
            entries = list(os.scandir(root))
        except OSError as exc:
            _on_error(exc)
            return
        for entry in entries:
            if not include_hidden and is_hidden_name(entry.name):
                continue
            if entry.is_symlink() and not follow_symlinks:
                continue
            try:
                if entry.is_file(follow_symlinks=follow_symlinks):
                    yield Path(entry.path)
            except OSError as exc:
                logger.warning("Skipping %s: %s", entry.path, exc)
        return

    for dirpath, dirnames, filenames in os.walk(
        root, onerror=_on_error, followlinks=follow_symlinks
    ):
        if not include_hidden:
            dirnames[:] = [name for name in dirnames if not is_hidden_name(name)]
        current = Path(dirpath)
        for name in filenames:
            if not include_hidden and is_hidden_name(name):
                continue
            candidate = current / name
            if candidate.is_symlink() and not follow_symlinks:
                continue
            yield candidate


def atomic_write_bytes(destination: Path, data: bytes, *, mode: int | None = None) -> None:
    """Write ``data`` to ``destination`` atomically.

    The bytes go to a temporary file in the destination directory which is
    flushed, fsynced and then moved into place with ``os.replace``. Readers of
    ``destination`` observe either the old or the new content, never a
    partial write.

    Args:
        destination: Final file path.
        data: Content to write.
        mode: Optional permission bits applied to the new file before the move.
    """
    destination = Path(destination)
    fd: int | None = None
    tmp_path: str | None = None

    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(destination.parent),
            prefix=f".{destination.name}.",
            suffix=".tmp",
        )

        with os.fdopen(fd, "wb") as handle:
            fd = None  # Ownership transferred to file object
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())

        if mode is not None:
            os.chmod(tmp_path, mode)

        os.replace(tmp_path, destination)
        tmp_path = None
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
