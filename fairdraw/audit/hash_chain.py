"""Append-only audit log in which every entry commits to its predecessor."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, MutableSequence, Optional, Sequence

from ..db.utils import iso_utc
from ..digest import canonical_json, sha256_hex

logger = logging.getLogger(__name__)

GENESIS_HASH = "GENESIS"
EVENT_FIELDS = ("timestamp", "event_type", "data", "prev_hash", "entry_hash")


class AuditLogParseError(ValueError):
    """Raised when an exported audit log line cannot be decoded.

    Attributes
    ----------
    line_number : int
        One-based line number of the offending line.
    """

    def __init__(self, line_number: int, message: str) -> None:
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


@dataclass(frozen=True)
class AuditEvent:
    """One hashed entry of the audit log."""

    timestamp: str
    event_type: str
    data: Mapping[str, Any]
    prev_hash: str
    entry_hash: str

    def hash_base(self) -> dict[str, Any]:
        """Return the fields covered by ``entry_hash``."""
        return {
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "data": self.data,
            "prev_hash": self.prev_hash,
        }

    def to_json(self) -> dict[str, Any]:
        return {**self.hash_base(), "entry_hash": self.entry_hash}

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "AuditEvent":
        """Build an event from a decoded JSON object.

        Raises
        ------
        ValueError
            If a field is missing or has the wrong type.
        """
        for name in EVENT_FIELDS:
            if name not in payload:
                raise ValueError(f"missing field '{name}'")
        for name in ("timestamp", "event_type", "prev_hash", "entry_hash"):
            if not isinstance(payload[name], str):
                raise ValueError(f"field '{name}' must be a string")
        if not isinstance(payload["data"], Mapping):
            raise ValueError("field 'data' must be an object")
        return cls(
            timestamp=payload["timestamp"],
            event_type=payload["event_type"],
            data=payload["data"],
            prev_hash=payload["prev_hash"],
            entry_hash=payload["entry_hash"],
        )


def compute_entry_hash(
    prev_hash: str, timestamp: str, event_type: str, data: Mapping[str, Any]
) -> str:
    """Return ``SHA-256(prev_hash + "\\n" + canonical(base))``."""
    base = {
        "timestamp": timestamp,
        "event_type": event_type,
        "data": data,
        "prev_hash": prev_hash,
    }
    return sha256_hex(f"{prev_hash}\n{canonical_json(base)}")


def append_audit_entry(
    chain: MutableSequence[AuditEvent],
    event_type: str,
    data: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
) -> AuditEvent:
    """Hash a new event onto ``chain`` and return it.

    The timestamp is captured here once and stored; verification only ever
    reads the stored value.

    Parameters
    ----------
    chain : MutableSequence[AuditEvent]
        Log to extend in place.
    event_type : str
        Milestone tag such as ``"DRAW_EXECUTED"``.
    data : Mapping[str, Any]
        JSON-serializable payload. It is deep-copied through JSON so later
        mutation of the caller's object cannot alter the hashed entry.
    now : Optional[datetime], default: None
        Fixed clock for tests.
    """
    if not event_type:
        raise ValueError("event_type must not be empty")
    frozen_data = json.loads(canonical_json(data))
    prev_hash = chain[-1].entry_hash if chain else GENESIS_HASH
    timestamp = iso_utc(now)
    entry = AuditEvent(
        timestamp=timestamp,
        event_type=event_type,
        data=frozen_data,
        prev_hash=prev_hash,
        entry_hash=compute_entry_hash(prev_hash, timestamp, event_type, frozen_data),
    )
    chain.append(entry)
    logger.debug(f"Audit event {event_type} appended at index {len(chain) - 1}")
    return entry


@dataclass(frozen=True)
class ChainVerification:
    """Outcome of :func:`verify_hash_chain`.

    Attributes
    ----------
    ok : bool
        ``True`` when every link and every entry hash checks out.
    final_hash : Optional[str]
        Hash of the last entry (``"GENESIS"`` for an empty chain); only set
        when ``ok``.
    index : Optional[int]
        Zero-based index of the first broken entry.
    failure : Optional[str]
        ``"prev_hash"`` for a broken link, ``"entry_hash"`` for a payload that
        no longer matches its hash.
    reason : Optional[str]
        Human-readable description of the failure.
    """

    ok: bool
    final_hash: Optional[str] = None
    index: Optional[int] = None
    failure: Optional[str] = None
    reason: Optional[str] = None


def verify_hash_chain(entries: Sequence[AuditEvent]) -> ChainVerification:
    """Walk ``entries`` from genesis and stop at the first inconsistency."""
    prev = GENESIS_HASH
    for index, entry in enumerate(entries):
        if entry.prev_hash != prev:
            return ChainVerification(
                ok=False,
                index=index,
                failure="prev_hash",
                reason=f"prev_hash mismatch at index {index}",
            )
        expected = compute_entry_hash(
            entry.prev_hash, entry.timestamp, entry.event_type, entry.data
        )
        if expected != entry.entry_hash:
            return ChainVerification(
                ok=False,
                index=index,
                failure="entry_hash",
                reason=f"entry_hash mismatch at index {index}",
            )
        prev = entry.entry_hash
    return ChainVerification(ok=True, final_hash=prev)


def to_json_lines(entries: Iterable[AuditEvent]) -> str:
    """Serialize ``entries`` as newline-delimited JSON in append order."""
    return "\n".join(entry.to_json_str() for entry in entries)


def parse_audit_jsonl(text: str) -> list[AuditEvent]:
    """Decode an exported audit log.

    Blank lines are ignored.

    Raises
    ------
    AuditLogParseError
        On the first line that is not a well-formed audit event.
    """
    events: list[AuditEvent] = []
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            raise AuditLogParseError(line_number, f"invalid JSON ({exc.msg})") from exc
        if not isinstance(payload, dict):
            raise AuditLogParseError(line_number, "expected a JSON object")
        try:
            events.append(AuditEvent.from_json(payload))
        except ValueError as exc:
            raise AuditLogParseError(line_number, str(exc)) from exc
    return events


__all__ = [
    "AuditEvent",
    "AuditLogParseError",
    "ChainVerification",
    "GENESIS_HASH",
    "append_audit_entry",
    "compute_entry_hash",
    "parse_audit_jsonl",
    "to_json_lines",
    "verify_hash_chain",
]
