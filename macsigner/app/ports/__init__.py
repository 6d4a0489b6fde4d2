"""Port interfaces for the MacSigner application layer.

These protocol interfaces define contracts for adapters.
The orchestrator depends on these ports, never on concrete implementations.
"""

__all__ = [
    "BackupPort",
    "FileProgress",
    "ProgressReporter",
    "ProgressSnapshot",
    "RemoteState",
    "SettingsStorePort",
    "SigningGatewayPort",
    "StatusResult",
    "SubmitFile",
    "SubmitPayload",
    "SubmitResponse",
    "StatusResponse",
    "TokenResponse",
]

from macsigner.app.ports.backup import BackupPort
from macsigner.app.ports.gateway import (
    RemoteState,
    SigningGatewayPort,
    StatusResponse,
    StatusResult,
    SubmitFile,
    SubmitPayload,
    SubmitResponse,
    TokenResponse,
)
from macsigner.app.ports.progress import FileProgress, ProgressReporter, ProgressSnapshot
from macsigner.app.ports.settings import SettingsStorePort
