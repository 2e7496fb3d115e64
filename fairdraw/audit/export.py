"""Write a finished run's public audit package to a directory."""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Optional, Sequence, Union

from ..ingest.privacy import last4, mask_name
from ..ingest.records import ApplicantRecord
from ..lottery.types import Applicant

if TYPE_CHECKING:
    from ..workflows import DrawOutcome

logger = logging.getLogger(__name__)

AUDIT_JSONL = "audit.jsonl"
AUDIT_SUMMARY = "audit_summary.json"
MANIFEST = "integrity_manifest.json"
SIGNATURE = "integrity_manifest.sig"
PUBLIC_KEY = "integrity_public_key.jwk"
WINNERS_CSV = "winners.csv"
WAITLIST_CSV = "waitlist.csv"

CSV_HEADER = ("rank", "anon_id", "masked_name", "phone_last4")


def public_rows_csv(
    applicants: Sequence[Applicant],
    records: Optional[Mapping[str, ApplicantRecord]] = None,
) -> str:
    """Render ranked public rows; raw identity fields never leave this function.

    ``records`` maps anon id to the uploaded row and is used only for the
    masked name and the last four phone digits.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for rank, applicant in enumerate(applicants, start=1):
        record = (records or {}).get(applicant.anon_id)
        writer.writerow(
            (
                rank,
                applicant.anon_id,
                mask_name(record.name if record else None),
                last4(record.mobile if record else None),
            )
        )
    return buffer.getvalue()


def export_audit_package(
    directory: Union[str, Path],
    outcome: "DrawOutcome",
    records: Optional[Mapping[str, ApplicantRecord]] = None,
) -> dict[str, Path]:
    """Write the audit artifacts and public result lists into ``directory``.

    Parameters
    ----------
    directory : Union[str, Path]
        Target directory; created when missing. Existing files are replaced.
    outcome : DrawOutcome
        Output of :func:`fairdraw.workflows.execute_lottery`.
    records : Optional[Mapping[str, ApplicantRecord]]
        Uploaded rows keyed by anon id, used for masking only.

    Returns
    -------
    dict[str, Path]
        Written file paths keyed by file name.
    """
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)

    signed = outcome.signed_manifest
    contents = {
        AUDIT_JSONL: outcome.audit_jsonl,
        AUDIT_SUMMARY: outcome.audit_summary_json,
        MANIFEST: signed.manifest.to_json_str(),
        SIGNATURE: signed.signature_base64,
        PUBLIC_KEY: signed.public_key_text,
        WINNERS_CSV: public_rows_csv(outcome.result.winners, records),
        WAITLIST_CSV: public_rows_csv(outcome.result.waitlist, records),
    }

    written: dict[str, Path] = {}
    for name, text in contents.items():
        path = target / name
        # newline="" keeps the hashed bytes identical on every platform
        with path.open("w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        written[name] = path
    logger.info(f"Audit package for {outcome.summary.run_id} written to {target}")
    return written


def read_audit_package(directory: Union[str, Path]) -> dict[str, str]:
    """Read the five integrity-relevant artifacts back as text.

    Raises
    ------
    FileNotFoundError
        If any artifact is missing.
    """
    source = Path(directory)
    out = {}
    for name in (AUDIT_JSONL, AUDIT_SUMMARY, MANIFEST, SIGNATURE, PUBLIC_KEY):
        with (source / name).open("r", encoding="utf-8", newline="") as fh:
            out[name] = fh.read()
    return out


__all__ = [
    "AUDIT_JSONL",
    "AUDIT_SUMMARY",
    "MANIFEST",
    "PUBLIC_KEY",
    "SIGNATURE",
    "WAITLIST_CSV",
    "WINNERS_CSV",
    "export_audit_package",
    "public_rows_csv",
    "read_audit_package",
]
