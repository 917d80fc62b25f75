"""Utility helpers shared across the replay package."""

from replay.util.rng import (
    DrawRecord,
    ModelRNG,
    SeededRNG,
    SystemRNG,
    create_model_rng,
    generate_seed,
    require_seeded_rng,
)

__all__ = [
    "DrawRecord",
    "ModelRNG",
    "SeededRNG",
    "SystemRNG",
    "create_model_rng",
    "generate_seed",
    "require_seeded_rng",
]
