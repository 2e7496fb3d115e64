"""Pseudonymous ids and masking for published output."""

from __future__ import annotations

import re
from typing import Optional

from ..digest import sha256_hex
from .records import ApplicantRecord


def anon_id_for(document_hash: str, record: ApplicantRecord) -> str:
    """Derive a stable anon id bound to the uploaded document.

    The same person receives a different id in every upload, so ids cannot
    be linked across runs.
    """
    member = record.member_id.strip()
    name = record.name.strip()
    birth = record.birth_date.strip()
    return sha256_hex(f"{document_hash}::{member}::{name}::{birth}")


def mask_name(name: Optional[str]) -> str:
    """Keep the first and last character, star the rest.

    >>> mask_name("홍길동")
    '홍*동'
    """
    raw = (name or "").strip()
    if len(raw) <= 1:
        return "*"
    if len(raw) == 2:
        return f"{raw[0]}*"
    return f"{raw[0]}{'*' * (len(raw) - 2)}{raw[-1]}"


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def last4(phone: Optional[str]) -> str:
    digits = normalize_phone(phone)
    return digits[-4:] if len(digits) >= 4 else "----"


__all__ = [
    "anon_id_for",
    "last4",
    "mask_name",
    "normalize_phone",
]
