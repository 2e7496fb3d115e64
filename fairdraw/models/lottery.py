"""Database models for persisted lottery runs and their audit chain."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from fairdraw.audit.hash_chain import AuditEvent
from fairdraw.digest import canonical_json

from .base import ID_TYPE, Base


class LotteryRun(Base):
    """One executed draw together with its published artifacts."""

    __tablename__ = "lottery_runs"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    """Public run identifier such as ``run-20250101T000000Z-abc123``."""

    run_salt_hex: Mapped[str] = mapped_column(String(64), nullable=False)
    document_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    """SHA-256 of the uploaded applicant document."""

    target_group: Mapped[str] = mapped_column(String(255), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    rounding_mode: Mapped[str] = mapped_column(String(10), nullable=False)
    guarantee_quota: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    seed_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    final_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Entry hash of the last audit event."""

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    """``completed`` after the draw, then the verdict of the latest replay."""

    summary_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    manifest_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signature_base64: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    public_key_jwk: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    events: Mapped[list["AuditEventRecord"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="AuditEventRecord.sequence",
    )
    """Audit chain in append order."""

    __table_args__ = (
        UniqueConstraint("run_id", name="lottery_runs_run_id_key"),
        CheckConstraint(
            "status IN ('completed','verified','verification_failed')",
            name="lottery_run_status_enum",
        ),
        CheckConstraint(
            "rounding_mode IN ('floor','ceil','round')", name="lottery_run_rounding_enum"
        ),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<LotteryRun(id={self.id}, run_id={self.run_id}, status={self.status})>"

    def audit_events(self) -> list[AuditEvent]:
        """Return the stored chain as :class:`AuditEvent` objects."""
        return [record.to_event() for record in self.events]

    @classmethod
    def get_by_run_id(cls, session: Session, run_id: str) -> Optional["LotteryRun"]:
        return session.scalar(select(cls).where(cls.run_id == run_id))


class AuditEventRecord(Base):
    """Stored copy of one audit chain entry."""

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    run_pk: Mapped[int] = mapped_column(
        ForeignKey("lottery_runs.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    """Zero-based position in the chain."""

    timestamp: Mapped[str] = mapped_column(String(32), nullable=False)
    """ISO-8601 text exactly as hashed; never re-rendered."""

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    prev_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    run: Mapped[LotteryRun] = relationship(back_populates="events")

    __table_args__ = (
        UniqueConstraint("run_pk", "sequence", name="audit_events_run_sequence_key"),
    )

    @classmethod
    def from_event(cls, sequence: int, event: AuditEvent) -> "AuditEventRecord":
        return cls(
            sequence=sequence,
            timestamp=event.timestamp,
            event_type=event.event_type,
            data_json=canonical_json(event.data),
            prev_hash=event.prev_hash,
            entry_hash=event.entry_hash,
        )

    def to_event(self) -> AuditEvent:
        return AuditEvent(
            timestamp=self.timestamp,
            event_type=self.event_type,
            data=json.loads(self.data_json),
            prev_hash=self.prev_hash,
            entry_hash=self.entry_hash,
        )


__all__ = ["AuditEventRecord", "LotteryRun"]
