"""Request/response models for the aggregation HTTP API."""

from __future__ import annotations

import string
from typing import List

from pydantic import BaseModel, Field, field_validator


class HealthResponse(BaseModel):
    status: str
    program_name: str
    program_digest: str


class SocialConfig(BaseModel):
    verifiedRoot: str
    minVerifiedNeeded: int


class ContextResponse(BaseModel):
    """Everything a client needs to build both input proofs for one session."""

    selfNullifier: str
    sessionNonce: str
    expiresInSeconds: float
    generationConfig: List[int]
    generationConfigHash: str
    socialConfig: SocialConfig


class AggregatedMetadata(BaseModel):
    self_nullifier: str
    generation_id: int
    social_level: int
    claim_hash: str


class ProverResponseModel(BaseModel):
    proof: str
    public_values: str
    vk_hash: str
    metadata: AggregatedMetadata


class VerifyRequest(BaseModel):
    """Aggregated proof handed back by the client to close its session."""

    proof: str = Field(..., min_length=1)
    publicValues: str = Field(..., min_length=1)
    vkHash: str
    sessionNonce: str = Field(..., min_length=1)
    metadata: AggregatedMetadata

    @field_validator("vkHash")
    @classmethod
    def validate_vk_hash(cls, v: str) -> str:
        """vk hashes are 0x-prefixed hex."""
        digits = v[2:]
        if not v.startswith("0x") or not digits or any(c not in string.hexdigits for c in digits):
            raise ValueError("vkHash must be 0x-prefixed hex")
        return v


class ErrorResponse(BaseModel):
    error: str
    code: str
