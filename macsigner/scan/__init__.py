"""Discovery of signable artifacts on the local filesystem."""

from macsigner.scan.classify import SIGNABLE_EXTENSIONS, is_signable
from macsigner.scan.discover import MAX_SIGNABLE_SIZE, scan_directory, validate_file

__all__ = [
    "MAX_SIGNABLE_SIZE",
    "SIGNABLE_EXTENSIONS",
    "is_signable",
    "scan_directory",
    "validate_file",
]
