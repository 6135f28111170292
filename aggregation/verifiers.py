"""
Pluggable verification of the two input proofs.

Without a verifier the binding layer only checks structure: it trusts that an
upstream step already verified both Groth16 proofs. Plugging a ProofVerifier
into the BindingValidator closes that gap without touching the orchestration
contract.
"""

from __future__ import annotations

import json
import logging
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence

from .errors import VerifierUnavailable

logger = logging.getLogger(__name__)


class ProofVerifier(ABC):
    """Checks one proof against its public signals and verifying key."""

    @abstractmethod
    def verify(self, proof: str, public_signals: Sequence[str], verifying_key: Path) -> bool:
        raise NotImplementedError


class SnarkjsGroth16Verifier(ProofVerifier):
    """Runs ``snarkjs groth16 verify`` against temporary proof/public files."""

    def __init__(self, snarkjs_bin: str = "snarkjs", timeout_s: float = 60.0):
        self.snarkjs_bin = snarkjs_bin
        self.timeout_s = timeout_s

    def verify(self, proof: str, public_signals: Sequence[str], verifying_key: Path) -> bool:
        proof_obj = extract_groth16_proof(proof)
        if proof_obj is None:
            logger.info("Proof string does not hold a Groth16 proof object")
            return False
        if not Path(verifying_key).is_file():
            raise VerifierUnavailable(f"verification key not found: {verifying_key}")

        try:
            with tempfile.TemporaryDirectory(prefix="agg-verify-") as tmp:
                proof_path = Path(tmp) / "proof.json"
                public_path = Path(tmp) / "public.json"
                proof_path.write_text(json.dumps(proof_obj), encoding="utf-8")
                public_path.write_text(json.dumps(list(public_signals)), encoding="utf-8")
                cmd = [
                    self.snarkjs_bin,
                    "groth16",
                    "verify",
                    str(verifying_key),
                    str(public_path),
                    str(proof_path),
                ]
                proc = subprocess.run(
                    cmd,
                    text=True,
                    capture_output=True,
                    timeout=self.timeout_s,
                    check=False,
                )
        except FileNotFoundError as exc:
            raise VerifierUnavailable(f"snarkjs not found: {self.snarkjs_bin}") from exc
        except subprocess.TimeoutExpired as exc:
            raise VerifierUnavailable(
                f"snarkjs verify timed out after {self.timeout_s}s"
            ) from exc
        except OSError as exc:
            raise VerifierUnavailable(f"snarkjs verify could not run: {exc}") from exc

        ok = proc.returncode == 0 and "OK" in proc.stdout
        if not ok:
            logger.info("snarkjs rejected proof (exit=%s): %s", proc.returncode, proc.stdout.strip())
        return ok


def extract_groth16_proof(proof: str) -> Optional[dict]:
    """Return the Groth16 proof object held by a canonical proof string.

    Accepts both a bare proof (``pi_a``/``pi_b``/``pi_c``) and a snarkjs bundle
    wrapping it under ``proof``.
    """
    try:
        decoded: Any = json.loads(proof)
    except json.JSONDecodeError:
        return None
    if isinstance(decoded, dict) and isinstance(decoded.get("proof"), dict):
        decoded = decoded["proof"]
    if isinstance(decoded, dict) and _looks_like_groth16(decoded):
        return decoded
    return None


def _looks_like_groth16(value: dict) -> bool:
    keys = {str(key).lower() for key in value}
    return {"pi_a", "pi_b", "pi_c"} <= keys
