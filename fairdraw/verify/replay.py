"""Independent replay of a published draw from its audit artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from ..audit.hash_chain import (
    AuditEvent,
    AuditLogParseError,
    parse_audit_jsonl,
    verify_hash_chain,
)
from ..audit.summary import AuditSummary, ReplayApplicant
from ..lottery.engine import LotteryDrawEngine
from ..lottery.seed import SeedMaterial, derive_seed_hash
from ..lottery.types import Applicant

logger = logging.getLogger(__name__)


class MembershipStatus(str, Enum):
    WINNER = "WINNER"
    WAITLIST = "WAITLIST"
    NOT_SELECTED = "NOT_SELECTED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class ReplayedResult:
    """Winners and waitlist recomputed from the replay projection."""

    applicants: tuple[ReplayApplicant, ...]
    winners: tuple[str, ...]
    waitlist: tuple[str, ...]
    seed_hash: str = ""


@dataclass(frozen=True)
class ReplayVerification:
    """Exhaustive verdict of :func:`verify_audit_and_replay`.

    Attributes
    ----------
    chain_ok : bool
        Whether the audit chain verified on its own.
    replay_ok : bool
        ``True`` only when nothing at all went wrong.
    reasons : list[str]
        Every mismatch found, in check order.
    replay_result : Optional[ReplayedResult]
        Recomputed output, ``None`` when the inputs could not be decoded.
    """

    chain_ok: bool
    replay_ok: bool
    reasons: list[str] = field(default_factory=list)
    replay_result: Optional[ReplayedResult] = None


@dataclass(frozen=True)
class IndividualResult:
    status: MembershipStatus
    waitlist_rank: Optional[int] = None
    applicant: Optional[ReplayApplicant] = None


def _replay_applicants(summary: AuditSummary) -> list[Applicant]:
    # Only the fields that drive the draw are rebuilt; personal fields were
    # never published.
    return [
        Applicant(
            anon_id=a.anon_id,
            valid=True,
            priority_match=a.priority_match,
            classification_reason=a.classification_reason,
            member_id=a.member_id,
        )
        for a in summary.applicants
        if a.valid
    ]


def verify_audit_and_replay(
    summary: AuditSummary, events: Sequence[AuditEvent]
) -> ReplayVerification:
    """Verify the chain, re-derive the seed and re-run the draw.

    Every check runs even after an earlier one failed, so the reasons list
    names each broken invariant: chain integrity, final hash, seed, winner
    ordering and waitlist ordering.
    """
    reasons: list[str] = []

    chain = verify_hash_chain(events)
    if not chain.ok:
        reasons.append(chain.reason or "hash chain failed")
    elif chain.final_hash != summary.final_hash:
        reasons.append("final hash mismatch with summary")

    material = SeedMaterial(
        document_hash=summary.document_hash,
        config=summary.config,
        btc_value=summary.btc.final_value,
        nist_value=summary.nist.final_value,
        run_id=summary.run_id,
        run_salt_hex=summary.run_salt_hex,
    )
    seed_hash = derive_seed_hash(material)
    if seed_hash != summary.seed_hash:
        reasons.append("seed hash mismatch")

    try:
        replay = LotteryDrawEngine(summary.config).run(
            _replay_applicants(summary), material, seed_hash=seed_hash
        )
    except ValueError as exc:
        reasons.append(f"replay could not run: {exc}")
        return ReplayVerification(chain_ok=chain.ok, replay_ok=False, reasons=reasons)

    if list(replay.winner_ids) != list(summary.draw_output.winners):
        reasons.append("winner ordering mismatch")
    if list(replay.waitlist_ids) != list(summary.draw_output.waitlist):
        reasons.append("waitlist ordering mismatch")

    if reasons:
        logger.warning(f"Replay of {summary.run_id} failed: {'; '.join(reasons)}")
    return ReplayVerification(
        chain_ok=chain.ok,
        replay_ok=not reasons,
        reasons=reasons,
        replay_result=ReplayedResult(
            applicants=summary.applicants,
            winners=tuple(replay.winner_ids),
            waitlist=tuple(replay.waitlist_ids),
            seed_hash=seed_hash,
        ),
    )


def verify_published_artifacts(summary_text: str, audit_jsonl_text: str) -> ReplayVerification:
    """Decode published artifacts and replay them.

    Malformed input yields a negative verdict naming the defect instead of
    raising.
    """
    try:
        summary = AuditSummary.from_json_str(summary_text)
    except ValueError as exc:
        return ReplayVerification(
            chain_ok=False,
            replay_ok=False,
            reasons=[f"audit_summary.json could not be parsed: {exc}"],
        )
    try:
        events = parse_audit_jsonl(audit_jsonl_text)
    except AuditLogParseError as exc:
        return ReplayVerification(
            chain_ok=False,
            replay_ok=False,
            reasons=[f"audit.jsonl could not be parsed at {exc}"],
        )
    return verify_audit_and_replay(summary, events)


def verify_individual_result(lookup: str, replayed: ReplayedResult) -> IndividualResult:
    """Report one applicant's outcome from recomputed output only.

    ``lookup`` may be an anon id or a member id.
    """
    key = lookup.strip()
    applicant = None
    if key:
        applicant = next(
            (a for a in replayed.applicants if key in (a.anon_id, a.member_id)), None
        )
    if applicant is None:
        return IndividualResult(status=MembershipStatus.NOT_FOUND)

    if applicant.anon_id in replayed.winners:
        return IndividualResult(status=MembershipStatus.WINNER, applicant=applicant)
    if applicant.anon_id in replayed.waitlist:
        rank = replayed.waitlist.index(applicant.anon_id) + 1
        return IndividualResult(
            status=MembershipStatus.WAITLIST, waitlist_rank=rank, applicant=applicant
        )
    return IndividualResult(status=MembershipStatus.NOT_SELECTED, applicant=applicant)


__all__ = [
    "IndividualResult",
    "MembershipStatus",
    "ReplayVerification",
    "ReplayedResult",
    "verify_audit_and_replay",
    "verify_individual_result",
    "verify_published_artifacts",
]
