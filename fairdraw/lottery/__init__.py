"""Deterministic draw pipeline: seed derivation, generator and winner selection."""

from .engine import DrawPartition, LotteryDrawEngine, run_lottery
from .prng import DeterministicPrng, deterministic_shuffle
from .seed import (
    SeedMaterial,
    calc_guarantee_quota,
    canonical_seed_parts,
    derive_seed_hash,
    generate_run_id,
    generate_run_salt,
)
from .types import (
    Applicant,
    ClassificationSource,
    DrawResult,
    LotteryConfig,
    RoundingMode,
)

__all__ = [
    "Applicant",
    "ClassificationSource",
    "DeterministicPrng",
    "DrawPartition",
    "DrawResult",
    "LotteryConfig",
    "LotteryDrawEngine",
    "RoundingMode",
    "SeedMaterial",
    "calc_guarantee_quota",
    "canonical_seed_parts",
    "derive_seed_hash",
    "deterministic_shuffle",
    "generate_run_id",
    "generate_run_salt",
    "run_lottery",
]
