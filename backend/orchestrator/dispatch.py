"""
Proof orchestration: backend selection and execute-or-prove dispatch.

The orchestrator is built once per process and shared by every request. It owns
two write-once caches:

- one backend client per BackendTarget (remote tiers are configured from
  AggregatorConfig on first use);
- one (proving key, verifying key) pair per target, produced by the backend's
  key setup, which takes seconds and is reused for every later proof.

Backends are built under the orchestrator lock; key setup runs under a lock
per target, so a slow setup on one tier blocks neither the others nor close().
Dispatch itself holds no per-request state and performs no retries: whatever the
backend raises is surfaced as a BackendError.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

from aggregation.errors import BackendError, ConfigError
from aggregation.types import AggregationInput, BackendTarget, ExecuteOrProve, ProofEncoding
from backend.config import AggregatorConfig
from backend.prover.interface import (
    BackendResult,
    ProgramImage,
    ProofBackend,
    ProvingKey,
    VerifyingKey,
)
from backend.prover.local import LocalProverBackend
from backend.prover.network import NetworkProverBackend

logger = logging.getLogger(__name__)

BackendFactory = Callable[[BackendTarget, AggregatorConfig], ProofBackend]


def build_backend(target: BackendTarget, config: AggregatorConfig) -> ProofBackend:
    """Construct the backend client for ``target`` from configuration."""
    if target is BackendTarget.LOCAL:
        return LocalProverBackend(config.prover_bin, timeout_s=config.prover_timeout_s)
    return NetworkProverBackend(
        target,
        rpc_url=config.rpc_url_for(target),
        api_key=config.network_api_key,
        timeout_s=config.network_timeout_s,
    )


class ProofOrchestrator:
    def __init__(
        self,
        program: ProgramImage,
        config: Optional[AggregatorConfig] = None,
        backend_factory: BackendFactory = build_backend,
    ):
        self.program = program
        self.config = config or AggregatorConfig()
        self._backend_factory = backend_factory
        self._backends: Dict[BackendTarget, ProofBackend] = {}
        self._keys: Dict[BackendTarget, Tuple[ProvingKey, VerifyingKey]] = {}
        self._lock = threading.Lock()
        self._setup_locks: Dict[BackendTarget, threading.Lock] = {}

    def dispatch(
        self,
        payload: AggregationInput,
        mode: ExecuteOrProve,
        network: BackendTarget = BackendTarget.LOCAL,
        encoding: ProofEncoding = ProofEncoding.COMPRESSED,
    ) -> BackendResult:
        """Run ``payload`` through the backend; ``payload`` must already be validated.

        EXECUTE is a local dry run regardless of ``network``: it never
        contacts a remote tier and produces no proof.
        """
        stdin = payload.to_program_input()
        started = time.monotonic()

        if mode is ExecuteOrProve.EXECUTE:
            if network.is_remote:
                logger.info("Execute mode ignores network=%s; running locally", network.value)
            backend = self.backend_for(BackendTarget.LOCAL)
            public_values, report = self._call(backend, "execute", backend.execute, self.program, stdin)
            logger.info(
                "Executed program %s in %s instructions (%.2fs)",
                self.program.name,
                report.instruction_count,
                time.monotonic() - started,
            )
            return BackendResult(mode=mode, public_values=public_values, report=report)

        backend = self.backend_for(network)
        proving_key, verifying_key = self.keys_for(network)
        logger.info(
            "Proving program %s digest=%s network=%s encoding=%s",
            self.program.name,
            self.program.digest[:16],
            network.value,
            encoding.value,
        )
        artifact = self._call(backend, "prove", backend.prove, proving_key, stdin, encoding)
        logger.info(
            "Proof generated network=%s encoding=%s proof_bytes=%d (%.2fs)",
            network.value,
            encoding.value,
            len(artifact.proof),
            time.monotonic() - started,
        )
        return BackendResult(
            mode=mode,
            public_values=artifact.public_values,
            encoding=encoding,
            proof=artifact.proof,
            verifying_key=verifying_key,
        )

    def backend_for(self, target: BackendTarget) -> ProofBackend:
        backend = self._backends.get(target)
        if backend is not None:
            return backend
        with self._lock:
            backend = self._backends.get(target)
            if backend is None:
                try:
                    backend = self._backend_factory(target, self.config)
                except (BackendError, ConfigError):
                    raise
                except Exception as exc:
                    raise BackendError(f"cannot construct {target.value} backend: {exc}") from exc
                self._backends[target] = backend
                logger.info("Constructed %s prover backend", target.value)
        return backend

    def keys_for(self, target: BackendTarget) -> Tuple[ProvingKey, VerifyingKey]:
        keys = self._keys.get(target)
        if keys is not None:
            return keys
        backend = self.backend_for(target)
        with self._setup_lock(target):
            keys = self._keys.get(target)
            if keys is None:
                started = time.monotonic()
                keys = self._call(backend, "setup", backend.setup, self.program)
                self._keys[target] = keys
                logger.info(
                    "Key setup for %s on %s took %.2fs",
                    self.program.name,
                    target.value,
                    time.monotonic() - started,
                )
        return keys

    def _setup_lock(self, target: BackendTarget) -> threading.Lock:
        with self._lock:
            return self._setup_locks.setdefault(target, threading.Lock())

    def prepare(self, targets: Iterable[BackendTarget] = (BackendTarget.LOCAL,)) -> None:
        """Build backends and run key setup ahead of the first request."""
        for target in targets:
            self.keys_for(target)

    def close(self) -> None:
        with self._lock:
            for backend in self._backends.values():
                backend.close()
            self._backends.clear()
            self._keys.clear()

    @staticmethod
    def _call(backend: ProofBackend, op: str, fn, *args):
        try:
            return fn(*args)
        except BackendError:
            raise
        except Exception as exc:
            logger.error("Backend %s failed during %s: %s", backend.name, op, exc)
            raise BackendError(f"{backend.name} backend {op} failed: {exc}") from exc
