"""Seed derivation from committed lottery inputs."""

from __future__ import annotations

import math
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from ..digest import concat_and_hash_hex
from .types import LotteryConfig, RoundingMode

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
RUN_SALT_BYTES = 32


@dataclass(frozen=True)
class SeedMaterial:
    """Every input that determines the seed of a run.

    Attributes
    ----------
    document_hash : str
        SHA-256 of the uploaded applicant document.
    config : LotteryConfig
        Locked configuration of the run.
    btc_value : str
        Finalized price-metric value, formatted exactly as published.
    nist_value : str
        Finalized beacon-metric value, formatted exactly as published.
    run_id : str
        Identifier of the run.
    run_salt_hex : str
        High-entropy salt committed before randomness is fetched.
    """

    document_hash: str
    config: LotteryConfig
    btc_value: str
    nist_value: str
    run_id: str
    run_salt_hex: str


def canonical_seed_parts(material: SeedMaterial) -> list[str]:
    """Return the labeled seed fields in their fixed protocol order.

    The order and the labels are part of the published protocol. Changing
    either changes every seed ever derived.
    """
    config = material.config
    return [
        f"excel_hash={material.document_hash}",
        f"selected_dong={config.target_group.strip()}",
        f"capacity={config.capacity}",
        f"rounding_mode={RoundingMode(config.rounding_mode).value}",
        f"btc={material.btc_value}",
        f"nist={material.nist_value}",
        f"run_id={material.run_id}",
        f"run_salt={material.run_salt_hex}",
    ]


def derive_seed_hash(material: SeedMaterial) -> str:
    """Hash :func:`canonical_seed_parts` into the lowercase hex seed."""
    return concat_and_hash_hex(canonical_seed_parts(material))


def calc_guarantee_quota(capacity: int, mode: Union[RoundingMode, str]) -> int:
    """Return half of ``capacity`` rounded with ``mode``.

    ``round`` rounds halves up, so ``calc_guarantee_quota(21, "round") == 11``.

    Raises
    ------
    ValueError
        If ``capacity`` is negative or ``mode`` is unknown.
    """
    if capacity < 0:
        raise ValueError("capacity must not be negative")
    mode = RoundingMode(mode)
    half = capacity / 2
    if mode is RoundingMode.FLOOR:
        return math.floor(half)
    if mode is RoundingMode.CEIL:
        return math.ceil(half)
    return math.floor(half + 0.5)


def generate_run_salt() -> str:
    """Return a fresh 256-bit salt as 64 lowercase hex characters."""
    return secrets.token_hex(RUN_SALT_BYTES)


def generate_run_id(now: Optional[datetime] = None, length: int = 6) -> str:
    """Return a run identifier such as ``run-20240101T090000Z-a1B2c3``."""
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    suffix = "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))
    return f"run-{stamp.strftime('%Y%m%dT%H%M%SZ')}-{suffix}"


__all__ = [
    "SeedMaterial",
    "calc_guarantee_quota",
    "canonical_seed_parts",
    "derive_seed_hash",
    "generate_run_id",
    "generate_run_salt",
]
