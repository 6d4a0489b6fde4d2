"""Directory scanning for signable artifacts."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from macsigner.errors import ArtifactIOError, ArtifactNotFoundError
from macsigner.models import Artifact
from macsigner.scan.classify import is_signable
from macsigner.utils.paths import find_files

logger = logging.getLogger(__name__)

#: Files above this size are rejected by :func:`validate_file` (2 GiB).
MAX_SIGNABLE_SIZE = 2 * 1024 * 1024 * 1024


def _artifact_sort_key(artifact: Artifact) -> tuple[str, str]:
    # Ordinal (code point) order on the name; path breaks ties between
    # same-named files in different directories.
    return (artifact.name, str(artifact.path))


def scan_directory(
    root: Path,
    *,
    recursive: bool = True,
    show_hidden: bool = False,
    auto_select: bool = True,
) -> list[Artifact]:
    """Discover signable artifacts under ``root``.

    Non-signable files are silently excluded. A file whose size cannot be
    read is logged and skipped; the scan continues with the remaining files.

    Args:
        root: Directory to scan, or a single file
        recursive: Descend into subdirectories (default: True)
        show_hidden: Include dot-prefixed files and directories
        auto_select: Initial ``selected`` flag for discovered artifacts

    Returns:
        Artifacts ordered by file name ascending

    Raises:
        ArtifactNotFoundError: If ``root`` does not exist
    """
    root = Path(root)
    if not root.exists():
        raise ArtifactNotFoundError(f"Path not found: {root}")

    root = root.absolute()

    if root.is_file():
        candidates = [root] if is_signable(root) else []
    else:
        logger.info("Scanning directory: %s (recursive=%s)", root, recursive)
        candidates = [
            path
            for path in find_files(root, recursive=recursive, include_hidden=show_hidden)
            if is_signable(path)
        ]

    artifacts: list[Artifact] = []
    for path in candidates:
        try:
            size = path.stat().st_size
        except OSError as exc:
            logger.warning("Skipping %s: cannot read file size (%s)", path, exc)
            continue
        artifacts.append(Artifact(path=path, size_bytes=size, selected=auto_select))

    artifacts.sort(key=_artifact_sort_key)
    logger.info("Found %d signable files in %s", len(artifacts), root)
    return artifacts


def validate_file(path: Path, *, max_size: int = MAX_SIGNABLE_SIZE) -> None:
    """Check that ``path`` is an existing, readable file of acceptable size.

    Raises:
        ArtifactNotFoundError: If the file does not exist
        ArtifactIOError: If the file cannot be opened or exceeds ``max_size``
    """
    path = Path(path)
    if not path.is_file():
        raise ArtifactNotFoundError(f"File not found: {path}")

    try:
        size = path.stat().st_size
        with path.open("rb"):
            pass
    except OSError as exc:
        raise ArtifactIOError(f"Cannot read {path}: {exc}") from exc

    if size > max_size:
        raise ArtifactIOError(
            f"File is too large to sign: {path} ({size} bytes, limit {max_size})"
        )

    if not os.access(path, os.W_OK):
        raise ArtifactIOError(f"File is not writable and cannot be replaced: {path}")
