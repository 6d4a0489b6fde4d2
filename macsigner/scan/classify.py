"""Extension-based classification of signable artifacts."""

from __future__ import annotations

import os
from pathlib import PurePath

SIGNABLE_EXTENSIONS = frozenset(
    {
        ".exe",
        ".dll",
        ".msi",
        ".cab",
        ".ocx",
        ".sys",
        ".scr",
        ".dylib",
        ".app",
        ".framework",
        ".bundle",
        ".kext",
        ".jar",
        ".apk",
        ".ipa",
        ".xap",
        ".vsix",
        ".nupkg",
    }
)


def is_signable(path: str | os.PathLike[str]) -> bool:
    """Return True if ``path`` carries a signable extension.

    Pure string check, no filesystem access. Comparison is case-insensitive
    and paths without an extension are never signable.
    """
    suffix = PurePath(path).suffix
    if not suffix:
        return False
    return suffix.lower() in SIGNABLE_EXTENSIONS
