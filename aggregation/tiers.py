"""Generation tiers addressed by ``target_generation_id``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class GenerationTier:
    generation_id: int
    label: str
    birth_year_start: int
    birth_year_end: int


GENERATION_TIERS: Tuple[GenerationTier, ...] = (
    GenerationTier(0, "Gen Z", 1997, 2012),
    GenerationTier(1, "Millennial", 1981, 1996),
    GenerationTier(2, "Gen X", 1965, 1980),
    GenerationTier(3, "Boomer", 1946, 1964),
    GenerationTier(4, "Silent", 1928, 1945),
)

MIN_GENERATION_ID = min(t.generation_id for t in GENERATION_TIERS)
MAX_GENERATION_ID = max(t.generation_id for t in GENERATION_TIERS)

MIN_SOCIAL_LEVEL = 1
MAX_SOCIAL_LEVEL = 100

# Poseidon hash of generation_config_vector(), as computed by the generation
# membership circuit. Clients compare it against the circuit's public signal.
GENERATION_CONFIG_HASH = (
    "20410492734497820080861672359265859434102176107885102445278438694323581735438"
)


def generation_config_vector() -> List[int]:
    """Flatten the tier table into the ``[id, start, end, ...]`` circuit input."""
    vector: List[int] = []
    for tier in GENERATION_TIERS:
        vector.extend((tier.generation_id, tier.birth_year_start, tier.birth_year_end))
    return vector
