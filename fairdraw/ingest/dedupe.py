"""Duplicate detection over uploaded rows."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from .records import ApplicantRecord


class DuplicatePolicy(str, Enum):
    LATEST = "latest"
    EARLIEST = "earliest"
    KEEP_ALL = "keep-all"


def _registration_epoch(value: str) -> float:
    # Unparseable timestamps sort first.
    text = value.strip()
    if not text:
        return 0.0
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def identity_key(record: ApplicantRecord) -> str:
    """Member id, or ``name::birth::phone-digits`` when the id is blank."""
    member = record.member_id.strip()
    if member:
        return member
    digits = re.sub(r"\D", "", record.mobile)
    return f"{record.name.strip()}::{record.birth_date.strip()}::{digits}"


def _group(records: Iterable[ApplicantRecord]) -> dict[str, list[ApplicantRecord]]:
    buckets: dict[str, list[ApplicantRecord]] = {}
    for record in records:
        buckets.setdefault(identity_key(record), []).append(record)
    return buckets


def detect_collisions(records: Iterable[ApplicantRecord]) -> dict[str, list[ApplicantRecord]]:
    """Return every identity key shared by two or more rows."""
    return {key: rows for key, rows in _group(records).items() if len(rows) > 1}


def apply_duplicate_policy(
    records: list[ApplicantRecord], policy: DuplicatePolicy | str
) -> list[ApplicantRecord]:
    """Keep one row per identity according to ``policy``.

    Parameters
    ----------
    records : list[ApplicantRecord]
        Uploaded rows.
    policy : DuplicatePolicy | str
        ``latest`` keeps the most recently registered row, ``earliest`` the
        first, ``keep-all`` returns ``records`` untouched.

    Returns
    -------
    list[ApplicantRecord]
        Surviving rows in original row order.
    """
    policy = DuplicatePolicy(policy)
    if policy is DuplicatePolicy.KEEP_ALL:
        return list(records)

    selected = []
    for rows in _group(records).values():
        # sorted() is stable, so ties keep upload order.
        ordered = sorted(rows, key=lambda r: _registration_epoch(r.registered_at))
        selected.append(ordered[0] if policy is DuplicatePolicy.EARLIEST else ordered[-1])
    return sorted(selected, key=lambda r: r.row_index)


__all__ = [
    "DuplicatePolicy",
    "apply_duplicate_policy",
    "detect_collisions",
    "identity_key",
]
