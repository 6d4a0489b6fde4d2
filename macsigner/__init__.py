"""MacSigner - scan, sign and replace binaries with Azure Trusted Signing.

Discovers signable artifacts in a directory tree, submits them as a batch to
the remote signing service, tracks the request until it finishes and swaps
each original for its signed counterpart after taking a backup.
"""

__version__ = "0.1.0"
__author__ = "MacSigner Contributors"

from macsigner.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
