"""Fernet sealing of secrets kept in the settings file."""

from __future__ import annotations

import logging
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from macsigner.utils.paths import atomic_write_bytes

logger = logging.getLogger(__name__)


def load_or_create_fernet_key(path: Path) -> bytes:
    """Return the Fernet key stored at ``path``, generating it on first use.

    A new key is written atomically with mode 0600; the parent directory is
    created if needed.
    """
    try:
        return path.read_bytes().strip()
    except FileNotFoundError:
        pass

    key = Fernet.generate_key()
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_bytes(path, key, mode=0o600)
    logger.info("Generated settings key at %s", path)
    return key


def seal_secret(secret: str, *, key: bytes) -> str:
    """Encrypt ``secret`` and return a text token safe to store in JSON."""
    return Fernet(key).encrypt(secret.encode("utf-8")).decode("ascii")


def open_secret(token: str, *, key: bytes) -> str:
    """Decrypt a token produced by :func:`seal_secret`.

    Raises:
        ValueError: If the token is malformed or was sealed with another key.
    """
    try:
        return Fernet(key).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as exc:
        raise ValueError("Stored secret cannot be decrypted with the current key") from exc
