"""Binding and response layer for aggregating generation + social proofs."""

from .binding import BindingValidator, ClaimHashPolicy, validate
from .errors import (
    AggregationError,
    BackendError,
    BackendUnavailable,
    BindingError,
    ConfigError,
    MalformedInput,
    OrchestrationError,
)
from .normalizer import normalize_document, normalize_request
from .public_values import decode_public_values, encode_public_values
from .response import ResponseBuilder
from .types import (
    AggregatedSignals,
    AggregationInput,
    BackendTarget,
    ExecuteOrProve,
    ProofEncoding,
    ProofPayload,
    ProverResponse,
)

__all__: list[str] = [
    "AggregatedSignals",
    "AggregationError",
    "AggregationInput",
    "BackendError",
    "BackendTarget",
    "BackendUnavailable",
    "BindingError",
    "BindingValidator",
    "ClaimHashPolicy",
    "ConfigError",
    "ExecuteOrProve",
    "MalformedInput",
    "OrchestrationError",
    "ProofEncoding",
    "ProofPayload",
    "ProverResponse",
    "ResponseBuilder",
    "decode_public_values",
    "encode_public_values",
    "normalize_document",
    "normalize_request",
    "validate",
]
