"""Row validation and priority-group classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..lottery.types import Applicant, ClassificationSource
from .records import ApplicantRecord
from .zip_mapping import ZipDistrictRecord, address_matches_district, normalize_zip

REQUIRED_FIELDS = (
    ("name", "name missing"),
    ("member_id", "member id missing"),
    ("mobile", "mobile number missing"),
    ("zip_code", "postal code missing"),
    ("address", "address missing"),
)


@dataclass(frozen=True)
class Validation:
    valid: bool
    reasons: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Classification:
    priority_match: bool
    reason: str
    source: ClassificationSource


def validate_record(record: ApplicantRecord) -> Validation:
    """Check that every required field of ``record`` is filled in."""
    reasons = tuple(
        message for name, message in REQUIRED_FIELDS if not getattr(record, name).strip()
    )
    return Validation(valid=not reasons, reasons=reasons)


def classify_record(
    record: ApplicantRecord,
    target_group: str,
    zip_map: Optional[Mapping[str, ZipDistrictRecord]] = None,
) -> Classification:
    """Decide whether ``record`` belongs to ``target_group``.

    A known postal code is authoritative. Otherwise the free-text address is
    searched for the district name; a hit there counts as a match.
    """
    zip_code = normalize_zip(record.zip_code)
    if zip_code and zip_map and zip_code in zip_map:
        hit = zip_map[zip_code]
        return Classification(
            priority_match=hit.district.strip() == target_group.strip(),
            reason=f"zip:{zip_code} -> {hit.province} {hit.city} {hit.district}",
            source=ClassificationSource.ZIP,
        )

    if address_matches_district(record.address, target_group):
        return Classification(
            priority_match=True,
            reason=f"address_fallback_matched:{target_group}",
            source=ClassificationSource.ADDRESS,
        )

    reason = (
        f"zip_not_found:{zip_code}"
        if zip_code
        else "zip_missing_or_invalid_and_address_no_confident_match"
    )
    return Classification(
        priority_match=False, reason=reason, source=ClassificationSource.UNKNOWN
    )


def build_applicant(
    record: ApplicantRecord,
    anon_id: str,
    target_group: str,
    zip_map: Optional[Mapping[str, ZipDistrictRecord]] = None,
) -> Applicant:
    """Combine validation and classification into a draw-ready applicant.

    Invalid rows never count as priority matches.
    """
    validation = validate_record(record)
    classification = classify_record(record, target_group, zip_map)
    return Applicant(
        anon_id=anon_id,
        valid=validation.valid,
        invalid_reasons=validation.reasons,
        priority_match=validation.valid and classification.priority_match,
        classification_reason=classification.reason,
        classification_source=classification.source,
        member_id=record.member_id,
        row_index=record.row_index,
    )


def source_label(source: ClassificationSource) -> str:
    """Return the human-facing label for a classification source."""
    if source is ClassificationSource.ZIP:
        return "postal code"
    if source is ClassificationSource.ADDRESS:
        return "address match"
    if source is ClassificationSource.UNKNOWN:
        return "unclassified"
    raise ValueError(f"unhandled classification source: {source!r}")


__all__ = [
    "Classification",
    "REQUIRED_FIELDS",
    "Validation",
    "build_applicant",
    "classify_record",
    "source_label",
    "validate_record",
]
