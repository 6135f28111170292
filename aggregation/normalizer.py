"""
Request normalization.

Turns raw request bytes into a canonical AggregationInput. Each upstream proof
may arrive in one of two shapes:

1. a JSON object (e.g. a snarkjs ``{"proof": ..., "publicSignals": [...]}``
   bundle): the whole object is re-serialized canonically as the proof string
   and ``publicSignals`` is lifted out;
2. a string that already holds the serialized proof: it is kept verbatim.

Missing public signals normalize to an empty list. Rejecting that is the
binding validator's job, not ours: normalization only fails on input that is
structurally unusable.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Tuple, Union

from backend.crypto.core import rfc8785_canonicalize

from .errors import MalformedInput
from .types import AggregationInput, ProofPayload

PUBLIC_SIGNALS_KEY = "publicSignals"

_STRING_FIELDS = (
    "session_nonce",
    "verified_root",
    "self_nullifier",
    "generation_claim_hash",
    "social_claim_hash",
)
_INT_FIELDS = ("min_verified_needed", "target_generation_id")


def normalize_request(raw: Union[bytes, str]) -> AggregationInput:
    """Parse a JSON request body into an AggregationInput."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInput("<body>", f"not valid UTF-8: {exc}") from exc
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedInput("<body>", f"invalid JSON: {exc}") from exc
    return normalize_document(document)


def normalize_document(document: Any) -> AggregationInput:
    """Build an AggregationInput from an already-decoded JSON document."""
    if not isinstance(document, Mapping):
        raise MalformedInput("<body>", f"expected a JSON object, got {_json_type(document)}")

    strings = {name: _require_str(document, name) for name in _STRING_FIELDS}
    ints = {name: _require_int(document, name) for name in _INT_FIELDS}

    return AggregationInput(
        generation=normalize_proof_payload(_require(document, "generation"), "generation"),
        social=normalize_proof_payload(_require(document, "social"), "social"),
        **strings,
        **ints,
    )


def normalize_proof_payload(value: Any, field: str) -> ProofPayload:
    if isinstance(value, Mapping):
        try:
            proof = rfc8785_canonicalize(dict(value))
        except (TypeError, ValueError) as exc:
            raise MalformedInput(field, str(exc)) from exc
        return ProofPayload(proof=proof, public_signals=_extract_signals(value, field))

    if isinstance(value, str):
        return ProofPayload(proof=value, public_signals=_signals_from_serialized(value, field))

    raise MalformedInput(field, f"expected an object or a string, got {_json_type(value)}")


def _signals_from_serialized(value: str, field: str) -> Tuple[str, ...]:
    # A serialized snarkjs bundle still carries its signals; opaque strings do not.
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return ()
    if isinstance(decoded, Mapping):
        return _extract_signals(decoded, field)
    return ()


def _extract_signals(container: Mapping[str, Any], field: str) -> Tuple[str, ...]:
    signals = container.get(PUBLIC_SIGNALS_KEY)
    if signals is None:
        return ()
    if not isinstance(signals, list):
        raise MalformedInput(
            f"{field}.{PUBLIC_SIGNALS_KEY}", f"expected an array, got {_json_type(signals)}"
        )
    for index, signal in enumerate(signals):
        if not isinstance(signal, str):
            raise MalformedInput(
                f"{field}.{PUBLIC_SIGNALS_KEY}[{index}]",
                f"expected a string, got {_json_type(signal)}",
            )
    return tuple(signals)


def _require(document: Mapping[str, Any], name: str) -> Any:
    if name not in document:
        raise MalformedInput(name, "missing required field")
    return document[name]


def _require_str(document: Mapping[str, Any], name: str) -> str:
    value = _require(document, name)
    if not isinstance(value, str):
        raise MalformedInput(name, f"expected a string, got {_json_type(value)}")
    return value


def _require_int(document: Mapping[str, Any], name: str) -> int:
    value = _require(document, name)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedInput(name, f"expected an integer, got {_json_type(value)}")
    return value


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__
