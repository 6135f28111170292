"""
Contract between the orchestration layer and a proof backend.

A proof backend deterministically executes a program image against an input
document and, on request, produces a succinct proof of that execution. This
module defines the value types exchanged with it and the abstract client every
backend implements. It also fixes the JSON protocol spoken to a local prover
host process.

Protocol Version: 1.0
"""

from __future__ import annotations

import base64
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, TypedDict, Union

from aggregation.errors import BackendError, ConfigError
from aggregation.types import ExecuteOrProve, ProofEncoding
from backend.crypto.core import canonical_bytes

PROTOCOL_VERSION = "1.0"


# ==============================================================================
# Value types
# ==============================================================================

@dataclass(frozen=True)
class ProgramImage:
    """The compiled aggregation program, loaded once and shared read-only."""

    name: str
    elf: bytes = field(repr=False)
    digest: str
    path: Optional[Path] = None

    @classmethod
    def from_bytes(cls, name: str, elf: bytes, path: Optional[Path] = None) -> "ProgramImage":
        return cls(name=name, elf=elf, digest=hashlib.sha256(elf).hexdigest(), path=path)

    @classmethod
    def load(cls, path: Union[str, Path], name: Optional[str] = None) -> "ProgramImage":
        program_path = Path(path).expanduser().resolve()
        try:
            elf = program_path.read_bytes()
        except OSError as exc:
            raise ConfigError(f"cannot read program image {program_path}: {exc}") from exc
        if not elf:
            raise ConfigError(f"program image {program_path} is empty")
        return cls.from_bytes(name or program_path.stem, elf, program_path)

    def describe(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"name": self.name, "digest": self.digest}
        if self.path is not None:
            info["path"] = str(self.path)
        return info


@dataclass(frozen=True)
class ProvingKey:
    """Opaque backend handle for a set-up program (key blob or remote key id)."""

    program_digest: str
    handle: str = field(repr=False)


@dataclass(frozen=True)
class VerifyingKey:
    """Verifying key in its two hash representations."""

    bytes32: bytes
    hash_bytes: bytes

    @classmethod
    def from_hex(cls, bytes32: str, hash_bytes: str) -> "VerifyingKey":
        return cls(bytes32=_decode_hex(bytes32, "bytes32"), hash_bytes=_decode_hex(hash_bytes, "hash_bytes"))


@dataclass(frozen=True)
class ExecutionReport:
    instruction_count: int
    cycle_tracker: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ProofArtifact:
    proof: bytes
    public_values: bytes
    encoding: ProofEncoding


@dataclass(frozen=True)
class BackendResult:
    """What one dispatch produced. Proof fields are unset for dry runs."""

    mode: ExecuteOrProve
    public_values: bytes
    encoding: Optional[ProofEncoding] = None
    proof: Optional[bytes] = None
    verifying_key: Optional[VerifyingKey] = None
    report: Optional[ExecutionReport] = None


# ==============================================================================
# Backend client
# ==============================================================================

class ProofBackend(ABC):
    """Client for one proof backend (local host process or remote network tier).

    Implementations must be safe to share across dispatches; they hold no
    per-request state.
    """

    name: str = "backend"

    @abstractmethod
    def setup(self, program: ProgramImage) -> Tuple[ProvingKey, VerifyingKey]:
        raise NotImplementedError

    @abstractmethod
    def execute(self, program: ProgramImage, stdin: Dict[str, Any]) -> Tuple[bytes, ExecutionReport]:
        raise NotImplementedError

    @abstractmethod
    def prove(self, proving_key: ProvingKey, stdin: Dict[str, Any], encoding: ProofEncoding) -> ProofArtifact:
        raise NotImplementedError

    def close(self) -> None:
        """Release transport resources. Default: nothing to release."""


# ==============================================================================
# Prover host protocol v1.0
# ==============================================================================

class HostSetupRequest(TypedDict):
    protocol_version: Literal["1.0"]
    op: Literal["setup"]
    program: Dict[str, Any]


class HostExecuteRequest(TypedDict):
    protocol_version: Literal["1.0"]
    op: Literal["execute"]
    program: Dict[str, Any]
    stdin: Dict[str, Any]


class HostProveRequest(TypedDict):
    protocol_version: Literal["1.0"]
    op: Literal["prove"]
    proving_key: str
    program_digest: str
    stdin: Dict[str, Any]
    mode: str


HostRequest = Union[HostSetupRequest, HostExecuteRequest, HostProveRequest]


class HostErrorResponse(TypedDict):
    status: Literal["error"]
    request_hash: str
    error_code: str
    message: str


def compute_request_hash(request: HostRequest) -> str:
    """SHA-256 of the canonical request; the host echoes it back."""
    return hashlib.sha256(canonical_bytes(request)).hexdigest()


def decode_b64(value: Any, name: str) -> bytes:
    if not isinstance(value, str):
        raise BackendError(f"backend response field {name!r} is not a base64 string", "BACKEND_BAD_RESPONSE")
    try:
        return base64.b64decode(value, validate=True)
    except ValueError as exc:
        raise BackendError(f"backend response field {name!r} is not valid base64: {exc}", "BACKEND_BAD_RESPONSE") from exc


def parse_verifying_key(value: Any) -> VerifyingKey:
    if not isinstance(value, dict):
        raise BackendError("backend response is missing 'verifying_key'", "BACKEND_BAD_RESPONSE")
    return VerifyingKey.from_hex(value.get("bytes32", ""), value.get("hash_bytes", ""))


def parse_report(value: Any) -> ExecutionReport:
    if not isinstance(value, dict) or not isinstance(value.get("instruction_count"), int):
        raise BackendError("backend response is missing an execution report", "BACKEND_BAD_RESPONSE")
    tracker = value.get("cycle_tracker") or {}
    return ExecutionReport(
        instruction_count=value["instruction_count"],
        cycle_tracker={str(k): int(v) for k, v in tracker.items()},
    )


def _decode_hex(value: Any, name: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise BackendError(f"verifying key field {name!r} is missing", "BACKEND_BAD_RESPONSE")
    raw = value[2:] if value.lower().startswith("0x") else value
    try:
        return bytes.fromhex(raw)
    except ValueError as exc:
        raise BackendError(f"verifying key field {name!r} is not hex: {exc}", "BACKEND_BAD_RESPONSE") from exc
