# tests/conftest.py
import copy
import os
from typing import Any, Dict

import pytest

from backend.config import AggregatorConfig
from backend.orchestrator.dispatch import ProofOrchestrator
from backend.orchestrator.pipeline import AggregationPipeline
from backend.prover.interface import ProgramImage
from fakes import FakeBackendFactory

# Mirrors the documented execute scenario.
VALID_REQUEST: Dict[str, Any] = {
    "generation": {"publicSignals": ["1"]},
    "social": {"publicSignals": ["5"]},
    "session_nonce": "n1",
    "verified_root": "r",
    "min_verified_needed": 10,
    "target_generation_id": 2,
    "self_nullifier": "nul1",
    "generation_claim_hash": "h",
    "social_claim_hash": "h",
}


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep developer AGGREGATOR_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("AGGREGATOR_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def valid_request() -> Dict[str, Any]:
    return copy.deepcopy(VALID_REQUEST)


@pytest.fixture
def program() -> ProgramImage:
    return ProgramImage.from_bytes("aggregator", b"\x7fELF-aggregator-test-image")


@pytest.fixture
def backend_factory() -> FakeBackendFactory:
    return FakeBackendFactory()


@pytest.fixture
def orchestrator(program, backend_factory) -> ProofOrchestrator:
    return ProofOrchestrator(program, config=AggregatorConfig(), backend_factory=backend_factory)


@pytest.fixture
def pipeline(orchestrator) -> AggregationPipeline:
    return AggregationPipeline(orchestrator)
