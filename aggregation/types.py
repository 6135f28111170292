"""
Data model for proof aggregation.

AggregationInput is the canonical, post-normalization request. It is frozen:
once the normalizer has produced it, nothing downstream may change what gets
validated and what gets dispatched.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple


class _NamedEnum(Enum):
    """Enum whose members are spelled on the command line by their value."""

    @classmethod
    def from_name(cls, name: str):
        key = name.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"invalid {cls.__name__} {name!r} (choose from {choices})")

    @classmethod
    def choices(cls) -> Tuple[str, ...]:
        return tuple(m.value for m in cls)


class ExecuteOrProve(_NamedEnum):
    EXECUTE = "execute"
    PROVE = "prove"


class BackendTarget(_NamedEnum):
    LOCAL = "local"
    RESERVED = "reserved"
    MAINNET = "mainnet"

    @property
    def is_remote(self) -> bool:
        return self is not BackendTarget.LOCAL


class ProofEncoding(_NamedEnum):
    CORE = "core"
    COMPRESSED = "compressed"
    GROTH16 = "groth16"
    PLONK = "plonk"

    @property
    def onchain_verifiable(self) -> bool:
        """Groth16 and Plonk proofs are checked on-chain against a bytes32 vk digest."""
        return self in (ProofEncoding.GROTH16, ProofEncoding.PLONK)


@dataclass(frozen=True)
class ProofPayload:
    """One upstream proof: its canonical proof string plus public signals."""

    proof: str
    public_signals: Tuple[str, ...]

    def to_program_input(self) -> Dict[str, Any]:
        return {"proof": self.proof, "public_signals": list(self.public_signals)}


@dataclass(frozen=True)
class AggregationInput:
    generation: ProofPayload
    social: ProofPayload
    session_nonce: str
    verified_root: str
    min_verified_needed: int
    target_generation_id: int
    self_nullifier: str
    generation_claim_hash: str
    social_claim_hash: str

    def to_program_input(self) -> Dict[str, Any]:
        """Render the document the backend program reads from its stdin."""
        return {
            "generation": self.generation.to_program_input(),
            "social": self.social.to_program_input(),
            "session_nonce": self.session_nonce,
            "verified_root": self.verified_root,
            "min_verified_needed": self.min_verified_needed,
            "target_generation_id": self.target_generation_id,
            "self_nullifier": self.self_nullifier,
            "generation_claim_hash": self.generation_claim_hash,
            "social_claim_hash": self.social_claim_hash,
        }


@dataclass(frozen=True)
class AggregatedSignals:
    """The values the backend program commits as public output."""

    self_nullifier: str
    generation_id: int
    social_level: int
    claim_hash: str

    @classmethod
    def from_input(cls, payload: AggregationInput) -> "AggregatedSignals":
        return cls(
            self_nullifier=payload.self_nullifier,
            generation_id=payload.target_generation_id,
            social_level=payload.min_verified_needed,
            claim_hash=payload.generation_claim_hash,
        )

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "self_nullifier": self.self_nullifier,
            "generation_id": self.generation_id,
            "social_level": self.social_level,
            "claim_hash": self.claim_hash,
        }


@dataclass(frozen=True)
class ProverResponse:
    proof: bytes
    public_values: bytes
    vk_hash: str
    metadata: AggregatedSignals

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "proof": base64.b64encode(self.proof).decode("ascii"),
            "public_values": base64.b64encode(self.public_values).decode("ascii"),
            "vk_hash": self.vk_hash,
            "metadata": self.metadata.to_metadata(),
        }
