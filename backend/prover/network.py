"""
NetworkProverBackend: delegates setup, execution and proving to a remote
prover network tier over HTTPS.

Selecting a tier is pure configuration (RPC URL plus API key). This client
performs no retries: a transport error or a non-2xx status is reported once,
verbatim, as a BackendError.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from aggregation.errors import BackendError, BackendUnavailable
from aggregation.types import BackendTarget, ProofEncoding

from .interface import (
    ExecutionReport,
    ProgramImage,
    ProofArtifact,
    ProofBackend,
    ProvingKey,
    VerifyingKey,
    decode_b64,
    parse_report,
    parse_verifying_key,
)

logger = logging.getLogger(__name__)


class NetworkProverBackend(ProofBackend):
    def __init__(
        self,
        target: BackendTarget,
        rpc_url: Optional[str],
        api_key: Optional[str],
        timeout_s: float = 3600.0,
        session: Optional[requests.Session] = None,
    ):
        if not target.is_remote:
            raise ValueError("NetworkProverBackend requires a remote target")
        if not rpc_url:
            raise BackendUnavailable(f"no RPC URL configured for the {target.value} prover network")
        if not api_key:
            raise BackendUnavailable(f"no API key configured for the {target.value} prover network")
        self.target = target
        self.name = target.value
        self.rpc_url = rpc_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        )

    def setup(self, program: ProgramImage) -> Tuple[ProvingKey, VerifyingKey]:
        body = self._post(
            "/v1/programs",
            {
                "name": program.name,
                "digest": program.digest,
                "elf": base64.b64encode(program.elf).decode("ascii"),
            },
        )
        key_id = body.get("proving_key_id")
        if not isinstance(key_id, str) or not key_id:
            raise BackendError("network setup response is missing 'proving_key_id'", "BACKEND_BAD_RESPONSE")
        return (
            ProvingKey(program_digest=program.digest, handle=key_id),
            parse_verifying_key(body.get("verifying_key")),
        )

    def execute(self, program: ProgramImage, stdin: Dict[str, Any]) -> Tuple[bytes, ExecutionReport]:
        body = self._post("/v1/execute", {"program_digest": program.digest, "stdin": stdin})
        return decode_b64(body.get("public_values"), "public_values"), parse_report(body.get("report"))

    def prove(self, proving_key: ProvingKey, stdin: Dict[str, Any], encoding: ProofEncoding) -> ProofArtifact:
        body = self._post(
            "/v1/proofs",
            {
                "proving_key_id": proving_key.handle,
                "program_digest": proving_key.program_digest,
                "stdin": stdin,
                "mode": encoding.value,
            },
        )
        return ProofArtifact(
            proof=decode_b64(body.get("proof"), "proof"),
            public_values=decode_b64(body.get("public_values"), "public_values"),
            encoding=encoding,
        )

    def close(self) -> None:
        self.session.close()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.rpc_url}{path}"
        logger.info("POST %s (network=%s)", url, self.target.value)
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout_s)
        except requests.Timeout as exc:
            raise BackendError(f"{self.target.value} prover network timed out: {exc}", "BACKEND_TIMEOUT") from exc
        except requests.RequestException as exc:
            raise BackendError(f"{self.target.value} prover network unreachable: {exc}", "BACKEND_NETWORK") from exc

        if not response.ok:
            raise BackendError(
                f"{self.target.value} prover network returned HTTP {response.status_code}: {response.text[:500]}",
                "BACKEND_HTTP_ERROR",
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise BackendError(f"{self.target.value} prover network returned non-JSON body", "BACKEND_BAD_RESPONSE") from exc
        if not isinstance(body, dict):
            raise BackendError(f"{self.target.value} prover network returned a non-object body", "BACKEND_BAD_RESPONSE")
        return body
