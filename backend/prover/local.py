"""
LocalProverBackend: talks to a prover host process on this machine.

Each operation spawns the host binary once and runs the exchange
VALIDATE -> SERIALIZE -> SPAWN -> AWAIT -> DESERIALIZE -> VALIDATE:
one canonical JSON request on stdin, one JSON response on stdout. The host may
log freely to stderr; stderr is forwarded to our logger and attached to errors.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from typing import Any, Dict, Optional, Tuple, cast

from aggregation.errors import BackendError, BackendUnavailable
from aggregation.types import ProofEncoding
from backend.crypto.core import rfc8785_canonicalize

from .interface import (
    PROTOCOL_VERSION,
    ExecutionReport,
    HostErrorResponse,
    HostRequest,
    ProgramImage,
    ProofArtifact,
    ProofBackend,
    ProvingKey,
    VerifyingKey,
    compute_request_hash,
    decode_b64,
    parse_report,
    parse_verifying_key,
)

log = logging.getLogger(__name__)


class LocalProverBackend(ProofBackend):
    name = "local"

    def __init__(self, prover_bin: str, timeout_s: float = 7200.0, env: Optional[Dict[str, str]] = None):
        if not prover_bin:
            raise BackendUnavailable("local prover host binary ('prover_bin') is not configured")
        if not os.path.isfile(prover_bin):
            raise BackendUnavailable(f"local prover host binary not found at: {prover_bin}")
        if timeout_s <= 0:
            raise BackendError("prover timeout must be positive", "BACKEND_CONFIG")
        self.prover_bin = prover_bin
        self.timeout_s = timeout_s
        self.env = env

    def setup(self, program: ProgramImage) -> Tuple[ProvingKey, VerifyingKey]:
        response = self._exchange(
            {"protocol_version": PROTOCOL_VERSION, "op": "setup", "program": program.describe()}
        )
        proving_key = response.get("proving_key")
        if not isinstance(proving_key, str) or not proving_key:
            raise BackendError("setup response is missing 'proving_key'", "BACKEND_BAD_RESPONSE")
        return (
            ProvingKey(program_digest=program.digest, handle=proving_key),
            parse_verifying_key(response.get("verifying_key")),
        )

    def execute(self, program: ProgramImage, stdin: Dict[str, Any]) -> Tuple[bytes, ExecutionReport]:
        response = self._exchange(
            {
                "protocol_version": PROTOCOL_VERSION,
                "op": "execute",
                "program": program.describe(),
                "stdin": stdin,
            }
        )
        return decode_b64(response.get("public_values"), "public_values"), parse_report(response.get("report"))

    def prove(self, proving_key: ProvingKey, stdin: Dict[str, Any], encoding: ProofEncoding) -> ProofArtifact:
        response = self._exchange(
            {
                "protocol_version": PROTOCOL_VERSION,
                "op": "prove",
                "proving_key": proving_key.handle,
                "program_digest": proving_key.program_digest,
                "stdin": stdin,
                "mode": encoding.value,
            }
        )
        return ProofArtifact(
            proof=decode_b64(response.get("proof"), "proof"),
            public_values=decode_b64(response.get("public_values"), "public_values"),
            encoding=encoding,
        )

    def _exchange(self, request: HostRequest) -> Dict[str, Any]:
        op = request["op"]
        request_hash = compute_request_hash(request)
        payload = rfc8785_canonicalize(request)

        log.debug("Spawning prover host op=%s bin=%s", op, self.prover_bin)
        env = dict(os.environ)
        if self.env:
            env.update(self.env)
        try:
            proc = subprocess.run(
                [self.prover_bin],
                input=payload + "\n",
                text=True,
                encoding="utf-8",
                capture_output=True,
                timeout=self.timeout_s,
                env=env,
                check=False,
            )
        except FileNotFoundError as exc:
            raise BackendUnavailable(f"local prover host binary not found at: {self.prover_bin}") from exc
        except subprocess.TimeoutExpired as exc:
            raise BackendError(f"prover host timed out after {self.timeout_s}s (op={op})", "BACKEND_TIMEOUT") from exc
        except OSError as exc:
            raise BackendUnavailable(f"failed to spawn prover host: {exc}") from exc

        if proc.stderr:
            for line in proc.stderr.splitlines():
                log.debug("[prover-host] %s", line)

        if proc.returncode != 0:
            raise BackendError(
                f"prover host exited with code {proc.returncode} (op={op}). stderr: {proc.stderr.strip()}",
                "BACKEND_EXIT",
            )
        if not proc.stdout.strip():
            raise BackendError(f"prover host closed stdout without a response (op={op})", "BACKEND_NO_RESPONSE")

        try:
            response = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise BackendError(f"prover host response is not JSON: {exc}. Response: {proc.stdout[:200]}", "BACKEND_BAD_RESPONSE") from exc

        if not isinstance(response, dict) or "status" not in response:
            raise BackendError(f"prover host response is missing 'status'. Response: {response}", "BACKEND_BAD_RESPONSE")
        if response.get("request_hash") != request_hash:
            raise BackendError(
                f"request_hash mismatch. Expected {request_hash}, got {response.get('request_hash')}",
                "BACKEND_HASH_MISMATCH",
            )
        if response["status"] == "error":
            error = cast(HostErrorResponse, response)
            raise BackendError(
                error.get("message", "unknown error from prover host"),
                error.get("error_code", "BACKEND_FAILURE"),
            )
        if response["status"] != "ok":
            raise BackendError(f"unexpected status {response['status']!r} from prover host", "BACKEND_BAD_RESPONSE")
        return response
