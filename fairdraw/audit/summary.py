"""Published snapshot of a lottery run, free of personal data."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from ..lottery.types import Applicant, DrawResult, LotteryConfig, RoundingMode
from ..randomness.consensus import RandomnessMetric

APP_VERSION = "1.0.0"


@dataclass(frozen=True)
class ReplayApplicant:
    """Per-applicant projection needed to replay a draw."""

    anon_id: str
    member_id: str
    valid: bool
    priority_match: bool
    invalid_reasons: tuple[str, ...] = ()
    classification_reason: str = ""

    @classmethod
    def from_applicant(cls, applicant: Applicant) -> "ReplayApplicant":
        return cls(
            anon_id=applicant.anon_id,
            member_id=applicant.member_id,
            valid=applicant.valid,
            priority_match=applicant.priority_match,
            invalid_reasons=tuple(applicant.invalid_reasons),
            classification_reason=applicant.classification_reason,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "anonId": self.anon_id,
            "memberId": self.member_id,
            "valid": self.valid,
            "selectedDongMatch": self.priority_match,
            "invalidReasons": list(self.invalid_reasons),
            "classificationReason": self.classification_reason,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "ReplayApplicant":
        anon_id = payload.get("anonId")
        if not isinstance(anon_id, str) or not anon_id:
            raise ValueError("applicantsForReplay entry is missing 'anonId'")
        return cls(
            anon_id=anon_id,
            member_id=str(payload.get("memberId") or ""),
            valid=bool(payload.get("valid", False)),
            priority_match=bool(payload.get("selectedDongMatch", False)),
            invalid_reasons=tuple(payload.get("invalidReasons") or ()),
            classification_reason=str(payload.get("classificationReason") or ""),
        )


@dataclass(frozen=True)
class DrawOutput:
    """Published ordering of the draw, as anon ids."""

    winners: tuple[str, ...]
    waitlist: tuple[str, ...]
    step1: tuple[str, ...]
    step2: tuple[str, ...]
    ordering: tuple[str, ...]

    @classmethod
    def from_result(cls, result: DrawResult) -> "DrawOutput":
        return cls(
            winners=tuple(result.winner_ids),
            waitlist=tuple(result.waitlist_ids),
            step1=tuple(result.phase1_winner_ids),
            step2=tuple(result.phase2_winner_ids),
            ordering=tuple(result.ordering),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "winners": list(self.winners),
            "waitlist": list(self.waitlist),
            "step1": list(self.step1),
            "step2": list(self.step2),
            "ordering": list(self.ordering),
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "DrawOutput":
        return cls(
            **{
                name: tuple(str(v) for v in payload.get(name) or ())
                for name in ("winners", "waitlist", "step1", "step2", "ordering")
            }
        )


@dataclass(frozen=True)
class AuditTotals:
    uploaded_rows: int
    valid_applicants: int
    invalid_applicants: int
    winners: int
    waitlist: int

    def to_json(self) -> dict[str, int]:
        return {
            "uploadedRows": self.uploaded_rows,
            "validApplicants": self.valid_applicants,
            "invalidApplicants": self.invalid_applicants,
            "winners": self.winners,
            "waitlist": self.waitlist,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "AuditTotals":
        return cls(
            uploaded_rows=int(payload.get("uploadedRows", 0)),
            valid_applicants=int(payload.get("validApplicants", 0)),
            invalid_applicants=int(payload.get("invalidApplicants", 0)),
            winners=int(payload.get("winners", 0)),
            waitlist=int(payload.get("waitlist", 0)),
        )


@dataclass(frozen=True)
class AuditSummary:
    """Denormalized, replayable record of one run.

    Attributes
    ----------
    document_hash : str
        Hash of the applicant document committed into the seed.
    run_id, run_salt_hex, seed_hash : str
        Seed inputs and output.
    final_hash : str
        Entry hash of the last audit event.
    generated_at : str
        Time the summary was written.
    config : LotteryConfig
        Locked configuration.
    guarantee_quota : int
        Quota computed from the config.
    btc, nist : RandomnessMetric
        Randomness metrics used for the seed.
    totals : AuditTotals
        Row counts.
    applicants : tuple[ReplayApplicant, ...]
        Replay projection of every uploaded applicant.
    draw_output : DrawOutput
        Published winners, waitlist and ordering.
    """

    document_hash: str
    run_id: str
    run_salt_hex: str
    seed_hash: str
    final_hash: str
    generated_at: str
    config: LotteryConfig
    guarantee_quota: int
    btc: RandomnessMetric
    nist: RandomnessMetric
    totals: AuditTotals
    applicants: tuple[ReplayApplicant, ...]
    draw_output: DrawOutput
    app_version: str = APP_VERSION

    def to_json(self) -> dict[str, Any]:
        return {
            "appVersion": self.app_version,
            "excelHash": self.document_hash,
            "runId": self.run_id,
            "runSaltHex": self.run_salt_hex,
            "seedHash": self.seed_hash,
            "finalHash": self.final_hash,
            "generatedAt": self.generated_at,
            "config": {
                "selectedDong": self.config.target_group,
                "capacity": self.config.capacity,
                "roundingMode": self.config.rounding_mode.value,
                "guaranteeQuota": self.guarantee_quota,
            },
            "randomness": {"btc": self.btc.to_json(), "nist": self.nist.to_json()},
            "totals": self.totals.to_json(),
            "applicantsForReplay": [a.to_json() for a in self.applicants],
            "drawOutput": self.draw_output.to_json(),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False, indent=2)

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "AuditSummary":
        """Decode a published summary.

        Summaries written before the beacon metric existed carry a
        ``nasdaq`` metric instead of ``nist``; its value is used in its place.

        Raises
        ------
        ValueError
            If a required section is missing or malformed.
        """
        try:
            config = payload["config"]
            randomness = payload["randomness"]
            btc = RandomnessMetric.from_json(randomness["btc"])
            legacy = randomness.get("nist") or randomness.get("nasdaq")
            nist = (
                RandomnessMetric.from_json(legacy)
                if legacy
                else RandomnessMetric(metric="NIST", final_value="")
            )
            return cls(
                app_version=str(payload.get("appVersion", "")),
                document_hash=str(payload["excelHash"]),
                run_id=str(payload["runId"]),
                run_salt_hex=str(payload["runSaltHex"]),
                seed_hash=str(payload["seedHash"]),
                final_hash=str(payload["finalHash"]),
                generated_at=str(payload.get("generatedAt", "")),
                config=LotteryConfig(
                    capacity=config["capacity"],
                    rounding_mode=RoundingMode(config["roundingMode"]),
                    target_group=config["selectedDong"],
                ),
                guarantee_quota=int(config.get("guaranteeQuota", 0)),
                btc=btc,
                nist=nist,
                totals=AuditTotals.from_json(payload.get("totals") or {}),
                applicants=tuple(
                    ReplayApplicant.from_json(a) for a in payload["applicantsForReplay"]
                ),
                draw_output=DrawOutput.from_json(payload["drawOutput"]),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"malformed audit summary: {exc!r}") from exc

    @classmethod
    def from_json_str(cls, text: str) -> "AuditSummary":
        return cls.from_json(json.loads(text))


def build_audit_summary(
    *,
    document_hash: str,
    config: LotteryConfig,
    btc: RandomnessMetric,
    nist: RandomnessMetric,
    applicants: Sequence[Applicant],
    result: DrawResult,
    final_hash: str,
    generated_at: str,
    uploaded_rows: Optional[int] = None,
) -> AuditSummary:
    """Assemble the summary of a finished run.

    ``applicants`` is every uploaded applicant, valid or not; only the
    replay projection of each is kept.
    """
    valid_count = sum(1 for a in applicants if a.valid)
    return AuditSummary(
        document_hash=document_hash,
        run_id=result.run_id,
        run_salt_hex=result.run_salt_hex,
        seed_hash=result.seed_hash,
        final_hash=final_hash,
        generated_at=generated_at,
        config=config,
        guarantee_quota=result.guarantee_quota,
        btc=btc,
        nist=nist,
        totals=AuditTotals(
            uploaded_rows=len(applicants) if uploaded_rows is None else uploaded_rows,
            valid_applicants=valid_count,
            invalid_applicants=len(applicants) - valid_count,
            winners=len(result.winners),
            waitlist=len(result.waitlist),
        ),
        applicants=tuple(ReplayApplicant.from_applicant(a) for a in applicants),
        draw_output=DrawOutput.from_result(result),
    )


__all__ = [
    "APP_VERSION",
    "AuditSummary",
    "AuditTotals",
    "DrawOutput",
    "ReplayApplicant",
    "build_audit_summary",
]
