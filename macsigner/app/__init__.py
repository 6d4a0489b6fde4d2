"""Application layer: ports, adapters and the signing orchestrator."""

from macsigner.app.orchestrator import SigningOrchestrator

__all__ = ["SigningOrchestrator"]
