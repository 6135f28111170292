"""
Assembly of the prover response contract.

The verifying-key hash format depends on the proof encoding, and downstream
on-chain verifiers only accept the 32-byte digest:

    GROTH16, PLONK      "0x" + vk.bytes32 (always 66 characters)
    CORE, COMPRESSED    "0x" + vk.hash_bytes (native hash, encoding-defined width)
    EXECUTE (dry run)   all-zero 32-byte hash next to a marked placeholder proof

Metadata is projected from the validated input; nothing is recomputed here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import BackendError
from .types import AggregatedSignals, AggregationInput, ExecuteOrProve, ProverResponse

if TYPE_CHECKING:
    from backend.prover.interface import BackendResult

EXECUTE_PLACEHOLDER_PROOF = b"mock-proof-execute-mode"
EXECUTE_PLACEHOLDER_VK_HASH = "0x" + "00" * 32
ONCHAIN_DIGEST_SIZE = 32


class ResponseBuilder:
    def build(self, result: BackendResult, payload: AggregationInput) -> ProverResponse:
        metadata = AggregatedSignals.from_input(payload)

        if result.mode is ExecuteOrProve.EXECUTE:
            return ProverResponse(
                proof=EXECUTE_PLACEHOLDER_PROOF,
                public_values=result.public_values,
                vk_hash=EXECUTE_PLACEHOLDER_VK_HASH,
                metadata=metadata,
            )

        if result.proof is None or result.verifying_key is None or result.encoding is None:
            raise BackendError("prove result is missing proof, verifying key or encoding")

        return ProverResponse(
            proof=result.proof,
            public_values=result.public_values,
            vk_hash=vk_hash_for(result),
            metadata=metadata,
        )


def vk_hash_for(result: BackendResult) -> str:
    vk = result.verifying_key
    if result.encoding.onchain_verifiable:
        if len(vk.bytes32) != ONCHAIN_DIGEST_SIZE:
            raise BackendError(
                f"on-chain vk digest must be {ONCHAIN_DIGEST_SIZE} bytes, got {len(vk.bytes32)}",
                "BACKEND_BAD_RESPONSE",
            )
        return "0x" + vk.bytes32.hex()
    if not vk.hash_bytes:
        raise BackendError("native vk hash is empty", "BACKEND_BAD_RESPONSE")
    return "0x" + vk.hash_bytes.hex()
