"""
Tests for the local prover host backend.

subprocess.run is mocked; the fake host answers by echoing the request hash
it received, as the real host does.
"""

import base64
import json
import subprocess
from unittest.mock import patch

import pytest

from aggregation.errors import BackendError, BackendUnavailable
from aggregation.types import ProofEncoding
from backend.prover.interface import ProvingKey, compute_request_hash
from backend.prover.local import LocalProverBackend

ONCHAIN = "0x" + "ab" * 32
NATIVE = "0x" + "cd" * 32


@pytest.fixture
def host_bin(tmp_path):
    path = tmp_path / "prover-host"
    path.write_text("#!/bin/sh\n")
    return str(path)


@pytest.fixture
def backend(host_bin):
    return LocalProverBackend(host_bin, timeout_s=30)


def _host(reply, returncode=0, stderr=""):
    """Build a subprocess.run replacement answering every request with ``reply``."""
    seen = []

    def run(cmd, input, **kwargs):
        request = json.loads(input)
        seen.append(request)
        body = dict(reply)
        body.setdefault("request_hash", compute_request_hash(request))
        stdout = body.pop("__raw__", None)
        if stdout is None:
            stdout = json.dumps(body)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    run.seen = seen
    return run


class TestLocalConstruction:
    def test_unconfigured_binary(self):
        with pytest.raises(BackendUnavailable):
            LocalProverBackend("")

    def test_missing_binary(self, tmp_path):
        with pytest.raises(BackendUnavailable):
            LocalProverBackend(str(tmp_path / "absent"))

    def test_non_positive_timeout(self, host_bin):
        with pytest.raises(BackendError):
            LocalProverBackend(host_bin, timeout_s=0)


class TestLocalOperations:
    def test_setup(self, backend, program):
        run = _host({"status": "ok", "proving_key": "pk-blob", "verifying_key": {"bytes32": ONCHAIN, "hash_bytes": NATIVE}})

        with patch("backend.prover.local.subprocess.run", side_effect=run):
            proving_key, verifying_key = backend.setup(program)

        assert proving_key.handle == "pk-blob"
        assert proving_key.program_digest == program.digest
        assert verifying_key.bytes32 == bytes.fromhex("ab" * 32)
        assert verifying_key.hash_bytes == bytes.fromhex("cd" * 32)
        assert run.seen[0]["op"] == "setup"
        assert run.seen[0]["protocol_version"] == "1.0"

    def test_execute(self, backend, program):
        run = _host(
            {
                "status": "ok",
                "public_values": base64.b64encode(b"committed").decode(),
                "report": {"instruction_count": 42, "cycle_tracker": {"verify": 7}},
            }
        )

        with patch("backend.prover.local.subprocess.run", side_effect=run):
            public_values, report = backend.execute(program, {"self_nullifier": "nul1"})

        assert public_values == b"committed"
        assert report.instruction_count == 42
        assert report.cycle_tracker == {"verify": 7}
        assert run.seen[0]["stdin"] == {"self_nullifier": "nul1"}

    def test_prove(self, backend):
        run = _host(
            {
                "status": "ok",
                "proof": base64.b64encode(b"proof").decode(),
                "public_values": base64.b64encode(b"pv").decode(),
            }
        )
        key = ProvingKey(program_digest="d" * 64, handle="pk-blob")

        with patch("backend.prover.local.subprocess.run", side_effect=run):
            artifact = backend.prove(key, {"a": 1}, ProofEncoding.PLONK)

        assert artifact.proof == b"proof"
        assert artifact.public_values == b"pv"
        assert artifact.encoding is ProofEncoding.PLONK
        assert run.seen[0]["mode"] == "plonk"
        assert run.seen[0]["proving_key"] == "pk-blob"

    def test_request_is_canonical_single_line(self, backend, program):
        captured = {}

        def run(cmd, input, **kwargs):
            captured["input"] = input
            request = json.loads(input)
            body = {
                "status": "ok",
                "request_hash": compute_request_hash(request),
                "proving_key": "pk",
                "verifying_key": {"bytes32": ONCHAIN, "hash_bytes": NATIVE},
            }
            return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(body), stderr="")

        with patch("backend.prover.local.subprocess.run", side_effect=run):
            backend.setup(program)

        assert captured["input"].endswith("\n")
        assert captured["input"].count("\n") == 1
        assert captured["input"].startswith('{"op":"setup","program":{')
        assert " " not in captured["input"]


class TestLocalFailures:
    def _setup_with(self, backend, program, run):
        with patch("backend.prover.local.subprocess.run", side_effect=run):
            return backend.setup(program)

    def test_non_zero_exit(self, backend, program):
        run = _host({"status": "ok"}, returncode=3, stderr="panicked at 'Claim hashes must match'")
        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "BACKEND_EXIT"
        assert "Claim hashes must match" in exc_info.value.message

    def test_empty_stdout(self, backend, program):
        run = _host({"__raw__": "  "})
        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "BACKEND_NO_RESPONSE"

    def test_non_json_stdout(self, backend, program):
        run = _host({"__raw__": "proving..."})
        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "BACKEND_BAD_RESPONSE"

    def test_request_hash_mismatch(self, backend, program):
        run = _host({"status": "ok", "request_hash": "0" * 64})
        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "BACKEND_HASH_MISMATCH"

    def test_host_error_keeps_code_and_message(self, backend, program):
        run = _host({"status": "error", "error_code": "SETUP_FAILED", "message": "out of memory"})
        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "SETUP_FAILED"
        assert exc_info.value.message == "out of memory"

    def test_missing_verifying_key(self, backend, program):
        run = _host({"status": "ok", "proving_key": "pk"})
        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "BACKEND_BAD_RESPONSE"

    def test_invalid_base64(self, backend, program):
        run = _host({"status": "ok", "public_values": "%%%", "report": {"instruction_count": 1}})
        with patch("backend.prover.local.subprocess.run", side_effect=run):
            with pytest.raises(BackendError) as exc_info:
                backend.execute(program, {})
        assert exc_info.value.code == "BACKEND_BAD_RESPONSE"

    def test_timeout(self, backend, program):
        def run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        with pytest.raises(BackendError) as exc_info:
            self._setup_with(backend, program, run)
        assert exc_info.value.code == "BACKEND_TIMEOUT"

    def test_binary_vanished(self, backend, program):
        def run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        with pytest.raises(BackendUnavailable):
            self._setup_with(backend, program, run)
