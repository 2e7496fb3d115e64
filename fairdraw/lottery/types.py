"""Value objects shared by the seed derivation, generator and draw engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RoundingMode(str, Enum):
    """Rounding rule applied when halving the capacity for the guarantee quota."""

    FLOOR = "floor"
    CEIL = "ceil"
    ROUND = "round"


class ClassificationSource(str, Enum):
    """How an applicant's priority-group membership was determined."""

    ZIP = "zip"
    ADDRESS = "address"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LotteryConfig:
    """Immutable configuration for one lottery run.

    Attributes
    ----------
    capacity : int
        Number of winning slots. Must be positive.
    rounding_mode : RoundingMode
        Rounding rule used for the guarantee quota.
    target_group : str
        Label of the priority subgroup (e.g. an administrative district).
    """

    capacity: int
    rounding_mode: RoundingMode
    target_group: str

    def __post_init__(self) -> None:
        if isinstance(self.capacity, bool) or not isinstance(self.capacity, int):
            raise TypeError("capacity must be an integer")
        if self.capacity <= 0:
            raise ValueError("capacity must be positive")
        # Accept plain strings such as "floor" for convenience.
        object.__setattr__(self, "rounding_mode", RoundingMode(self.rounding_mode))
        if not isinstance(self.target_group, str):
            raise TypeError("target_group must be a string")


@dataclass(frozen=True)
class Applicant:
    """Pseudonymous applicant as seen by the draw engine.

    Only ``anon_id``, ``valid`` and ``priority_match`` influence the draw.
    The remaining fields are carried for audit output.
    """

    anon_id: str
    valid: bool = True
    invalid_reasons: tuple[str, ...] = ()
    priority_match: bool = False
    classification_reason: str = ""
    classification_source: ClassificationSource = ClassificationSource.UNKNOWN
    member_id: str = ""
    row_index: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "classification_source", ClassificationSource(self.classification_source)
        )
        object.__setattr__(self, "invalid_reasons", tuple(self.invalid_reasons))
        if not self.valid and self.priority_match:
            object.__setattr__(self, "priority_match", False)


@dataclass(frozen=True)
class DrawResult:
    """Outcome of :func:`fairdraw.lottery.engine.run_lottery`.

    Attributes
    ----------
    run_id, run_salt_hex : str
        Identifiers copied from the seed material.
    seed_hash : str
        Hex seed that keyed the generator.
    guarantee_quota : int
        Phase-1 slots reserved for priority applicants.
    winners, waitlist : tuple[Applicant, ...]
        Partition of the valid applicants, each in shuffle order.
    ordering : tuple[str, ...]
        Every anon id in full shuffle order.
    phase1_winner_ids, phase2_winner_ids : tuple[str, ...]
        Winners admitted through the guarantee and through the open pool.
    """

    run_id: str
    run_salt_hex: str
    seed_hash: str
    guarantee_quota: int
    winners: tuple[Applicant, ...]
    waitlist: tuple[Applicant, ...]
    ordering: tuple[str, ...]
    phase1_winner_ids: tuple[str, ...] = field(default_factory=tuple)
    phase2_winner_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def winner_ids(self) -> list[str]:
        return [a.anon_id for a in self.winners]

    @property
    def waitlist_ids(self) -> list[str]:
        return [a.anon_id for a in self.waitlist]


__all__ = [
    "Applicant",
    "ClassificationSource",
    "DrawResult",
    "LotteryConfig",
    "RoundingMode",
]
