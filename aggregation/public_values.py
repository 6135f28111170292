"""
Codec for the aggregation program's committed public values.

The program commits, in order: self_nullifier (str), generation_id (u32),
social_level (u32), claim_hash (str). Strings are a little-endian u64 byte
length followed by UTF-8 bytes; u32 values are 4 little-endian bytes.
"""

from __future__ import annotations

import struct
from typing import Tuple

from .errors import MalformedInput
from .types import AggregatedSignals

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


def encode_public_values(signals: AggregatedSignals) -> bytes:
    return b"".join(
        (
            _encode_str(signals.self_nullifier),
            _U32.pack(signals.generation_id),
            _U32.pack(signals.social_level),
            _encode_str(signals.claim_hash),
        )
    )


def decode_public_values(data: bytes) -> AggregatedSignals:
    self_nullifier, offset = _decode_str(data, 0, "self_nullifier")
    generation_id, offset = _decode_u32(data, offset, "generation_id")
    social_level, offset = _decode_u32(data, offset, "social_level")
    claim_hash, offset = _decode_str(data, offset, "claim_hash")
    if offset != len(data):
        raise MalformedInput("public_values", f"{len(data) - offset} trailing bytes")
    return AggregatedSignals(
        self_nullifier=self_nullifier,
        generation_id=generation_id,
        social_level=social_level,
        claim_hash=claim_hash,
    )


def _encode_str(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _U64.pack(len(raw)) + raw


def _decode_u32(data: bytes, offset: int, name: str) -> Tuple[int, int]:
    end = offset + _U32.size
    if end > len(data):
        raise MalformedInput("public_values", f"truncated before {name}")
    (value,) = _U32.unpack_from(data, offset)
    return value, end


def _decode_str(data: bytes, offset: int, name: str) -> Tuple[str, int]:
    end = offset + _U64.size
    if end > len(data):
        raise MalformedInput("public_values", f"truncated before {name} length")
    (length,) = _U64.unpack_from(data, offset)
    if end + length > len(data):
        raise MalformedInput("public_values", f"truncated inside {name}")
    try:
        value = data[end:end + length].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedInput("public_values", f"{name} is not UTF-8") from exc
    return value, end + length
