"""Backend orchestrator module.

Provides proof dispatch and the end-to-end aggregation pipeline.
"""

from .dispatch import ProofOrchestrator, build_backend
from .pipeline import AggregationPipeline

__all__ = [
    "AggregationPipeline",
    "ProofOrchestrator",
    "build_backend",
]
