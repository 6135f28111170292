"""
End-to-end aggregation pipeline: normalize -> validate -> dispatch -> build.

The order is fixed. Validation is the admission gate in front of the backend:
proving costs orders of magnitude more than validating, so nothing reaches
``ProofOrchestrator.dispatch`` unless every binding invariant holds.
"""

from __future__ import annotations

import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from aggregation.binding import BindingValidator
from aggregation.errors import AggregationError, OrchestrationError
from aggregation.normalizer import normalize_document, normalize_request
from aggregation.response import ResponseBuilder
from aggregation.types import (
    AggregationInput,
    BackendTarget,
    ExecuteOrProve,
    ProofEncoding,
    ProverResponse,
)
from backend.config import AggregatorConfig
from backend.crypto.core import canonical_bytes
from backend.logging.jsonl_writer import DispatchLogWriter

from .dispatch import ProofOrchestrator

logger = logging.getLogger(__name__)

RawRequest = Union[bytes, str, Mapping[str, Any], AggregationInput]


class AggregationPipeline:
    def __init__(
        self,
        orchestrator: ProofOrchestrator,
        validator: Optional[BindingValidator] = None,
        builder: Optional[ResponseBuilder] = None,
        dispatch_log: Optional[DispatchLogWriter] = None,
    ):
        self.orchestrator = orchestrator
        self.validator = validator or BindingValidator()
        self.builder = builder or ResponseBuilder()
        self.dispatch_log = dispatch_log

    @classmethod
    def from_config(cls, config: AggregatorConfig, orchestrator: Optional[ProofOrchestrator] = None) -> "AggregationPipeline":
        if orchestrator is None:
            orchestrator = ProofOrchestrator(config.load_program(), config=config)
        dispatch_log = DispatchLogWriter(config.dispatch_log_path) if config.dispatch_log_path else None
        return cls(orchestrator, validator=config.build_validator(), dispatch_log=dispatch_log)

    def normalize(self, raw: RawRequest) -> AggregationInput:
        if isinstance(raw, AggregationInput):
            return raw
        if isinstance(raw, Mapping):
            return normalize_document(raw)
        return normalize_request(raw)

    def run(
        self,
        raw: RawRequest,
        mode: ExecuteOrProve,
        network: BackendTarget = BackendTarget.LOCAL,
        encoding: ProofEncoding = ProofEncoding.COMPRESSED,
        admit: Optional[Callable[[AggregationInput], None]] = None,
    ) -> ProverResponse:
        """Run one request end to end.

        ``admit`` runs after binding validation and before dispatch; it may
        raise an AggregationError to refuse the request (e.g. a session check).
        """
        started = time.monotonic()
        record: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_hash": _request_hash(raw),
            "mode": mode.value,
            "network": BackendTarget.LOCAL.value if mode is ExecuteOrProve.EXECUTE else network.value,
            "encoding": None if mode is ExecuteOrProve.EXECUTE else encoding.value,
        }
        try:
            payload = self.normalize(raw)
            self.validator.validate(payload)
            if admit is not None:
                admit(payload)
            result = self.orchestrator.dispatch(payload, mode, network, encoding)
            response = self.builder.build(result, payload)
        except AggregationError as exc:
            outcome = "failed" if isinstance(exc, OrchestrationError) else "rejected"
            logger.warning("Aggregation %s: %s", outcome, exc)
            self._record(record, outcome, started, exc.code)
            raise

        self._record(record, "ok", started, None)
        return response

    def close(self) -> None:
        self.orchestrator.close()
        if self.dispatch_log is not None:
            self.dispatch_log.close()

    def _record(self, record: Dict[str, Any], outcome: str, started: float, error_code: Optional[str]) -> None:
        if self.dispatch_log is None:
            return
        record["outcome"] = outcome
        record["error_code"] = error_code
        record["elapsed_ms"] = round((time.monotonic() - started) * 1000, 3)
        try:
            self.dispatch_log.write(record)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to write dispatch log: %s", exc)


def _request_hash(raw: RawRequest) -> str:
    if isinstance(raw, AggregationInput):
        data = canonical_bytes(raw.to_program_input())
    elif isinstance(raw, Mapping):
        try:
            data = canonical_bytes(dict(raw))
        except (TypeError, ValueError):
            data = repr(raw).encode("utf-8")
    elif isinstance(raw, str):
        data = raw.encode("utf-8")
    else:
        data = raw
    return hashlib.sha256(data).hexdigest()
