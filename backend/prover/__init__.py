"""Proof backend clients (local prover host and remote prover network)."""

from .interface import (
    BackendResult,
    ExecutionReport,
    ProgramImage,
    ProofArtifact,
    ProofBackend,
    ProvingKey,
    VerifyingKey,
)
from .local import LocalProverBackend
from .network import NetworkProverBackend

__all__ = [
    "BackendResult",
    "ExecutionReport",
    "ProgramImage",
    "ProofArtifact",
    "ProofBackend",
    "ProvingKey",
    "VerifyingKey",
    "LocalProverBackend",
    "NetworkProverBackend",
]
