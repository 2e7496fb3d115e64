"""Two-phase winner selection over a deterministically shuffled applicant list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .prng import DeterministicPrng, deterministic_shuffle
from .seed import SeedMaterial, calc_guarantee_quota, derive_seed_hash
from .types import Applicant, DrawResult, LotteryConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawPartition:
    """Winners and waitlist computed from one shuffled sequence.

    Attributes
    ----------
    guarantee_quota : int
        Slots reserved for priority applicants.
    winners : tuple[Applicant, ...]
        Winning applicants in shuffle order.
    waitlist : tuple[Applicant, ...]
        Remaining applicants in shuffle order; rank is ``index + 1``.
    phase1_ids, phase2_ids : tuple[str, ...]
        Winner anon ids admitted through the guarantee and the open pool,
        each in shuffle order.
    """

    guarantee_quota: int
    winners: tuple[Applicant, ...]
    waitlist: tuple[Applicant, ...]
    phase1_ids: tuple[str, ...]
    phase2_ids: tuple[str, ...]


class LotteryDrawEngine:
    """Engine that shuffles valid applicants and selects winners for a config."""

    def __init__(self, config: LotteryConfig) -> None:
        """Create an engine bound to a locked :class:`LotteryConfig`.

        Parameters
        ----------
        config : LotteryConfig
            Capacity and rounding mode used for every draw of this engine.
        """
        self._config = config

    @property
    def config(self) -> LotteryConfig:
        return self._config

    @property
    def guarantee_quota(self) -> int:
        return calc_guarantee_quota(self._config.capacity, self._config.rounding_mode)

    def partition(self, shuffled: Sequence[Applicant]) -> DrawPartition:
        """Split an already shuffled sequence into winners and waitlist.

        Parameters
        ----------
        shuffled : Sequence[Applicant]
            Valid applicants in the order produced by the generator.

        Returns
        -------
        DrawPartition
            Winners and waitlist, each preserving ``shuffled`` order.

        Notes
        -----
        1. When everybody fits, everybody wins. Priority applicants are
           attributed to phase 1 and the rest to phase 2.
        2. Otherwise phase 1 admits the first ``quota`` priority applicants
           in shuffle order.
        3. Phase 2 walks the sequence again and admits anybody not yet
           admitted until capacity is reached.
        4. Everybody else forms the waitlist.
        """
        capacity = self._config.capacity
        quota = self.guarantee_quota

        if len(shuffled) <= capacity:
            return DrawPartition(
                guarantee_quota=quota,
                winners=tuple(shuffled),
                waitlist=(),
                phase1_ids=tuple(a.anon_id for a in shuffled if a.priority_match),
                phase2_ids=tuple(a.anon_id for a in shuffled if not a.priority_match),
            )

        phase1: set[str] = set()
        for applicant in shuffled:
            if len(phase1) >= quota:
                break
            if applicant.priority_match:
                phase1.add(applicant.anon_id)

        admitted = set(phase1)
        for applicant in shuffled:
            if len(admitted) >= capacity:
                break
            admitted.add(applicant.anon_id)

        winners = tuple(a for a in shuffled if a.anon_id in admitted)
        waitlist = tuple(a for a in shuffled if a.anon_id not in admitted)
        return DrawPartition(
            guarantee_quota=quota,
            winners=winners,
            waitlist=waitlist,
            phase1_ids=tuple(a.anon_id for a in winners if a.anon_id in phase1),
            phase2_ids=tuple(a.anon_id for a in winners if a.anon_id not in phase1),
        )

    def run(
        self,
        valid_applicants: Sequence[Applicant],
        seed_material: SeedMaterial,
        *,
        seed_hash: Optional[str] = None,
    ) -> DrawResult:
        """Derive the seed, shuffle ``valid_applicants`` and select winners.

        Parameters
        ----------
        valid_applicants : Sequence[Applicant]
            Applicants eligible for the draw, in upload order.
        seed_material : SeedMaterial
            Committed inputs of the run.
        seed_hash : Optional[str], default: None
            Precomputed seed. When omitted it is derived from ``seed_material``.

        Returns
        -------
        DrawResult
            Draw outcome including the full shuffle ordering.

        Raises
        ------
        ValueError
            If an applicant is invalid, anon ids repeat, or the seed material
            carries a different configuration than the engine.
        """
        if seed_material.config != self._config:
            raise ValueError("seed material config does not match the engine config")

        seen: set[str] = set()
        for applicant in valid_applicants:
            if not applicant.valid:
                raise ValueError(f"applicant {applicant.anon_id} is not valid")
            if applicant.anon_id in seen:
                raise ValueError(f"duplicate anon_id {applicant.anon_id}")
            seen.add(applicant.anon_id)

        seed = seed_hash or derive_seed_hash(seed_material)
        prng = DeterministicPrng(seed)
        shuffled = deterministic_shuffle(valid_applicants, prng)
        partition = self.partition(shuffled)

        logger.info(
            f"Draw {seed_material.run_id}: {len(partition.winners)} winners, "
            f"{len(partition.waitlist)} waitlisted, quota {partition.guarantee_quota}"
        )
        return DrawResult(
            run_id=seed_material.run_id,
            run_salt_hex=seed_material.run_salt_hex,
            seed_hash=seed,
            guarantee_quota=partition.guarantee_quota,
            winners=partition.winners,
            waitlist=partition.waitlist,
            ordering=tuple(a.anon_id for a in shuffled),
            phase1_winner_ids=partition.phase1_ids,
            phase2_winner_ids=partition.phase2_ids,
        )


def run_lottery(
    valid_applicants: Sequence[Applicant],
    config: LotteryConfig,
    seed_material: SeedMaterial,
) -> DrawResult:
    """Run a complete draw; thin wrapper around :class:`LotteryDrawEngine`."""
    return LotteryDrawEngine(config).run(valid_applicants, seed_material)


__all__ = ["DrawPartition", "LotteryDrawEngine", "run_lottery"]
