"""Helpers that turn uploaded rows into pseudonymous draw applicants."""

from .classify import (
    Classification,
    Validation,
    build_applicant,
    classify_record,
    source_label,
    validate_record,
)
from .dedupe import DuplicatePolicy, apply_duplicate_policy, detect_collisions, identity_key
from .privacy import anon_id_for, last4, mask_name
from .records import ApplicantRecord
from .zip_mapping import (
    ZipDistrictRecord,
    address_matches_district,
    build_district_token_variants,
    normalize_address,
    parse_zip_mapping_text,
)

__all__ = [
    "ApplicantRecord",
    "Classification",
    "DuplicatePolicy",
    "Validation",
    "ZipDistrictRecord",
    "address_matches_district",
    "anon_id_for",
    "apply_duplicate_policy",
    "build_applicant",
    "build_district_token_variants",
    "classify_record",
    "detect_collisions",
    "identity_key",
    "last4",
    "mask_name",
    "normalize_address",
    "parse_zip_mapping_text",
    "source_label",
    "validate_record",
]
