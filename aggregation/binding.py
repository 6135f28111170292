"""
Binding validation for proof aggregation.

The generation and social proofs come from independent circuits that never see
each other. The only linkage this layer can check is structural: both proofs are
present and carry signals, the identity commitment (self_nullifier) and the
session nonce are set, the claimed tier and threshold are in range, and the two
claim hashes bind to the same session context.

Trust boundary: these checks do not verify the Groth16 proofs themselves, and
neither does the backend program, which repeats only the claim-hash equality
assertion. Callers must have verified both proofs upstream, or configure a
ProofVerifier here (see aggregation.verifiers).

Checks run in a fixed order and stop at the first violation, so a given input
always reports the same error.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from .errors import (
    ClaimHashMismatch,
    EmptyNullifier,
    EmptyProof,
    EmptySessionNonce,
    EmptySignals,
    GenerationIdOutOfRange,
    ProofRejected,
    SocialLevelOutOfRange,
    VerifierUnavailable,
)
from .tiers import MAX_GENERATION_ID, MAX_SOCIAL_LEVEL, MIN_GENERATION_ID, MIN_SOCIAL_LEVEL
from .types import AggregationInput
from .verifiers import ProofVerifier

logger = logging.getLogger(__name__)

SIDES = ("generation", "social")


class ClaimHashPolicy(Enum):
    """How the two independently computed claim hashes must relate.

    STRICT: byte-equal (what the backend program asserts).
    RELAXED: each non-empty; binding rests on nullifier and nonce alone.
    """

    STRICT = "strict"
    RELAXED = "relaxed"


class BindingValidator:
    def __init__(
        self,
        policy: ClaimHashPolicy = ClaimHashPolicy.STRICT,
        verifier: Optional[ProofVerifier] = None,
        verifying_keys: Optional[Mapping[str, Path]] = None,
    ):
        self.policy = policy
        self.verifier = verifier
        self.verifying_keys = dict(verifying_keys or {})
        if verifier is not None:
            missing = [side for side in SIDES if side not in self.verifying_keys]
            if missing:
                raise VerifierUnavailable(
                    f"proof verifier configured without verifying keys for: {', '.join(missing)}"
                )

    def validate(self, payload: AggregationInput) -> None:
        """Raise the first BindingError that ``payload`` violates."""
        proofs = {"generation": payload.generation, "social": payload.social}

        for side in SIDES:
            if not proofs[side].proof:
                raise EmptyProof(side)
        for side in SIDES:
            if not proofs[side].public_signals:
                raise EmptySignals(side)

        if not payload.self_nullifier:
            raise EmptyNullifier()
        if not payload.session_nonce:
            raise EmptySessionNonce()

        if not MIN_GENERATION_ID <= payload.target_generation_id <= MAX_GENERATION_ID:
            raise GenerationIdOutOfRange(
                payload.target_generation_id, MIN_GENERATION_ID, MAX_GENERATION_ID
            )
        if not MIN_SOCIAL_LEVEL <= payload.min_verified_needed <= MAX_SOCIAL_LEVEL:
            raise SocialLevelOutOfRange(
                payload.min_verified_needed, MIN_SOCIAL_LEVEL, MAX_SOCIAL_LEVEL
            )

        self._check_claim_hashes(payload)

        if self.verifier is not None:
            for side in SIDES:
                proof = proofs[side]
                if not self.verifier.verify(
                    proof.proof, proof.public_signals, self.verifying_keys[side]
                ):
                    raise ProofRejected(side)

        logger.debug(
            "Binding validated nullifier=%s generation_id=%s social_level=%s policy=%s",
            payload.self_nullifier,
            payload.target_generation_id,
            payload.min_verified_needed,
            self.policy.value,
        )

    def _check_claim_hashes(self, payload: AggregationInput) -> None:
        generation_hash = payload.generation_claim_hash
        social_hash = payload.social_claim_hash

        if self.policy is ClaimHashPolicy.STRICT:
            if not generation_hash or not social_hash:
                raise ClaimHashMismatch("claim hashes must be non-empty")
            if generation_hash != social_hash:
                raise ClaimHashMismatch(
                    "claim hashes must match across generation and social proofs"
                )
            return

        if not generation_hash:
            raise ClaimHashMismatch("generation_claim_hash is empty")
        if not social_hash:
            raise ClaimHashMismatch("social_claim_hash is empty")


def validate(payload: AggregationInput, policy: ClaimHashPolicy = ClaimHashPolicy.STRICT) -> None:
    """Structural validation with no proof verifier."""
    BindingValidator(policy=policy).validate(payload)
