import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

from sqlalchemy.orm import Session

from .audit.hash_chain import AuditEvent, append_audit_entry, to_json_lines
from .audit.integrity import SignedManifest, build_integrity_manifest, sign_integrity_manifest
from .audit.keys import InMemoryKeyProvider, KeyProvider
from .audit.summary import AuditSummary, build_audit_summary
from .db.utils import iso_utc
from .lottery.engine import LotteryDrawEngine
from .lottery.seed import SeedMaterial, derive_seed_hash, generate_run_id, generate_run_salt
from .lottery.types import Applicant, DrawResult, LotteryConfig
from .models import AuditEventRecord, LotteryRun
from .randomness.consensus import PublicRandomness, fetch_public_randomness
from .verify.replay import ReplayVerification, verify_audit_and_replay

if TYPE_CHECKING:
    from .randomness.client import RandomnessClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawOutcome:
    """Everything a finished run publishes.

    Attributes
    ----------
    result : DrawResult
        Winners, waitlist and shuffle ordering.
    events : tuple[AuditEvent, ...]
        Hash chain in append order.
    summary : AuditSummary
        Replay-ready summary of the run.
    audit_jsonl, audit_summary_json : str
        Exact text of the two published artifacts the manifest covers.
    signed_manifest : SignedManifest
        Integrity manifest with its detached signature and public key.
    """

    result: DrawResult
    events: tuple[AuditEvent, ...]
    summary: AuditSummary
    audit_jsonl: str
    audit_summary_json: str
    signed_manifest: SignedManifest

    @property
    def final_hash(self) -> str:
        return self.events[-1].entry_hash


def execute_lottery(
    applicants: Sequence[Applicant],
    config: LotteryConfig,
    document_hash: str,
    *,
    randomness: Optional[PublicRandomness] = None,
    client: Optional["RandomnessClient"] = None,
    key_provider: Optional[KeyProvider] = None,
    run_id: Optional[str] = None,
    run_salt_hex: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DrawOutcome:
    """Run one lottery end to end and produce its signed audit package.

    The pipeline locks the configuration, gathers public randomness, derives
    the seed, executes the draw and seals the audit chain. Each milestone is
    appended to the chain before the next one starts.

    Parameters
    ----------
    applicants : Sequence[Applicant]
        Every uploaded applicant. Invalid ones are kept in the summary but
        excluded from the draw.
    config : LotteryConfig
        Locked run configuration.
    document_hash : str
        SHA-256 of the uploaded applicant document.
    randomness : Optional[PublicRandomness]
        Pre-fetched (possibly manually overridden) metrics. When omitted,
        providers are sampled through ``client``.
    client : Optional[RandomnessClient]
        HTTP client used when ``randomness`` is omitted.
    key_provider : Optional[KeyProvider]
        Signing key source. Defaults to a fresh in-memory key.
    run_id, run_salt_hex : Optional[str]
        Fixed identifiers for tests; generated when omitted.
    now : Optional[datetime]
        Fixed clock for every timestamp of the run.

    Returns
    -------
    DrawOutcome
        Result, chain and the published artifacts.

    Raises
    ------
    InsufficientRandomnessError
        If either randomness metric lacks quorum. The draw does not run.
    ValueError
        If the applicant list contains duplicate anon ids.
    """
    run_id = run_id or generate_run_id(now)
    run_salt_hex = run_salt_hex or generate_run_salt()
    valid = [a for a in applicants if a.valid]
    chain: list[AuditEvent] = []

    append_audit_entry(
        chain,
        "CONFIG_LOCKED",
        {
            "runId": run_id,
            "excelHash": document_hash,
            "selectedDong": config.target_group,
            "capacity": config.capacity,
            "roundingMode": config.rounding_mode.value,
            "uploadedRows": len(applicants),
            "validApplicants": len(valid),
        },
        now=now,
    )

    if randomness is None:
        randomness = fetch_public_randomness(client)
    append_audit_entry(
        chain,
        "RANDOMNESS_FETCHED",
        {"btc": randomness.btc.to_json(), "nist": randomness.nist.to_json()},
        now=now,
    )
    btc_value, nist_value = randomness.require_final_values()

    material = SeedMaterial(
        document_hash=document_hash,
        config=config,
        btc_value=btc_value,
        nist_value=nist_value,
        run_id=run_id,
        run_salt_hex=run_salt_hex,
    )
    seed_hash = derive_seed_hash(material)
    append_audit_entry(
        chain,
        "SEED_DERIVED",
        {"seedHash": seed_hash, "runSaltHex": run_salt_hex},
        now=now,
    )

    result = LotteryDrawEngine(config).run(valid, material, seed_hash=seed_hash)
    append_audit_entry(
        chain,
        "DRAW_EXECUTED",
        {
            "guaranteeQuota": result.guarantee_quota,
            "winners": result.winner_ids,
            "waitlist": result.waitlist_ids,
            "step1": list(result.phase1_winner_ids),
            "step2": list(result.phase2_winner_ids),
        },
        now=now,
    )

    final_hash = chain[-1].entry_hash
    summary = build_audit_summary(
        document_hash=document_hash,
        config=config,
        btc=randomness.btc,
        nist=randomness.nist,
        applicants=applicants,
        result=result,
        final_hash=final_hash,
        generated_at=iso_utc(now),
    )
    audit_jsonl = to_json_lines(chain)
    audit_summary_json = summary.to_json_str()
    manifest = build_integrity_manifest(audit_jsonl, audit_summary_json, now=now)
    signed = sign_integrity_manifest(manifest, key_provider or InMemoryKeyProvider())

    logger.info(f"Run {run_id} sealed with final hash {final_hash}")
    return DrawOutcome(
        result=result,
        events=tuple(chain),
        summary=summary,
        audit_jsonl=audit_jsonl,
        audit_summary_json=audit_summary_json,
        signed_manifest=signed,
    )


def persist_run(session: Session, outcome: DrawOutcome) -> LotteryRun:
    """Store a finished run and its audit chain.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session. The caller commits.
    outcome : DrawOutcome
        Output of :func:`execute_lottery`.

    Returns
    -------
    LotteryRun
        The flushed run row.
    """
    summary = outcome.summary
    if LotteryRun.get_by_run_id(session, summary.run_id) is not None:
        raise ValueError(f"Run {summary.run_id} is already stored.")

    run = LotteryRun(
        run_id=summary.run_id,
        run_salt_hex=summary.run_salt_hex,
        document_hash=summary.document_hash,
        target_group=summary.config.target_group,
        capacity=summary.config.capacity,
        rounding_mode=summary.config.rounding_mode.value,
        guarantee_quota=summary.guarantee_quota,
        seed_hash=summary.seed_hash,
        final_hash=summary.final_hash,
        status="completed",
        summary_json=outcome.audit_summary_json,
        manifest_json=outcome.signed_manifest.manifest.to_json_str(),
        signature_base64=outcome.signed_manifest.signature_base64,
        public_key_jwk=outcome.signed_manifest.public_key_text,
    )
    run.events = [
        AuditEventRecord.from_event(index, event) for index, event in enumerate(outcome.events)
    ]
    session.add(run)
    session.flush()
    return run


def load_run_chain(session: Session, run_id: str) -> list[AuditEvent]:
    """Return the stored audit chain of ``run_id`` in append order."""
    run = LotteryRun.get_by_run_id(session, run_id)
    if run is None:
        raise ValueError(f"Run {run_id} not found.")
    return run.audit_events()


def verify_stored_run(session: Session, run_id: str) -> ReplayVerification:
    """Replay a stored run and record the verdict on its status.

    Raises
    ------
    ValueError
        If the run does not exist or has no stored summary.
    """
    run = LotteryRun.get_by_run_id(session, run_id)
    if run is None:
        raise ValueError(f"Run {run_id} not found.")
    if not run.summary_json:
        raise ValueError(f"Run {run_id} has no stored summary.")

    verdict = verify_audit_and_replay(
        AuditSummary.from_json_str(run.summary_json), run.audit_events()
    )
    run.status = "verified" if verdict.replay_ok else "verification_failed"
    session.flush()
    return verdict


__all__ = [
    "DrawOutcome",
    "execute_lottery",
    "load_run_chain",
    "persist_run",
    "verify_stored_run",
]
