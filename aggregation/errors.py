"""
Error taxonomy for proof aggregation.

Every failure carries a stable ``code`` so callers (CLI, HTTP service, dispatch
log) can report it without parsing messages:

- MalformedInput      request bytes are not a well-formed aggregation request
- BindingError        a session/binding invariant is violated (one subclass each)
- OrchestrationError  the proof backend failed (setup, execute, prove, network)
- ConfigError         configuration is unreadable or inconsistent

All of them are terminal for the current request.
"""

from __future__ import annotations

from typing import Optional


class AggregationError(Exception):
    """Base exception for all aggregation failures."""

    default_code = "AGGREGATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class MalformedInput(AggregationError):
    """Raised when a request cannot be parsed into an AggregationInput."""

    default_code = "MALFORMED_INPUT"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class ConfigError(AggregationError):
    default_code = "CONFIG_ERROR"


# ==============================================================================
# Binding violations
# ==============================================================================

class BindingError(AggregationError):
    """Base class for violated binding invariants."""

    default_code = "BINDING_ERROR"


class EmptyProof(BindingError):
    default_code = "EMPTY_PROOF"

    def __init__(self, side: str):
        self.side = side
        super().__init__(f"{side} proof is empty")


class EmptySignals(BindingError):
    default_code = "EMPTY_SIGNALS"

    def __init__(self, side: str):
        self.side = side
        super().__init__(f"{side} proof carries no public signals")


class EmptyNullifier(BindingError):
    default_code = "EMPTY_NULLIFIER"

    def __init__(self) -> None:
        super().__init__("self_nullifier is empty")


class EmptySessionNonce(BindingError):
    default_code = "EMPTY_SESSION_NONCE"

    def __init__(self) -> None:
        super().__init__("session_nonce is empty")


class GenerationIdOutOfRange(BindingError):
    default_code = "GENERATION_ID_OUT_OF_RANGE"

    def __init__(self, value: int, low: int, high: int):
        self.value = value
        super().__init__(f"target_generation_id {value} outside [{low}, {high}]")


class SocialLevelOutOfRange(BindingError):
    default_code = "SOCIAL_LEVEL_OUT_OF_RANGE"

    def __init__(self, value: int, low: int, high: int):
        self.value = value
        super().__init__(f"min_verified_needed {value} outside [{low}, {high}]")


class ClaimHashMismatch(BindingError):
    default_code = "CLAIM_HASH_MISMATCH"


class ProofRejected(BindingError):
    """An input proof failed cryptographic verification."""

    default_code = "PROOF_REJECTED"

    def __init__(self, side: str, detail: str = ""):
        self.side = side
        message = f"{side} proof failed verification"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VerifierUnavailable(BindingError):
    default_code = "VERIFIER_UNAVAILABLE"


# ==============================================================================
# Backend failures
# ==============================================================================

class OrchestrationError(AggregationError):
    default_code = "ORCHESTRATION_ERROR"


class BackendError(OrchestrationError):
    """Failure reported by (or while reaching) the proof backend.

    The backend's own diagnostic is kept verbatim in ``message``.
    """

    default_code = "BACKEND_FAILURE"


class BackendUnavailable(BackendError):
    """The selected backend is not configured or cannot be started."""

    default_code = "BACKEND_UNAVAILABLE"
