"""Tamper-evident audit log, run summary and signed integrity manifest."""

from .hash_chain import (
    GENESIS_HASH,
    AuditEvent,
    AuditLogParseError,
    ChainVerification,
    append_audit_entry,
    parse_audit_jsonl,
    to_json_lines,
    verify_hash_chain,
)
from .integrity import (
    IntegrityManifest,
    IntegrityVerification,
    SignedManifest,
    build_integrity_manifest,
    sign_integrity_manifest,
    verify_integrity_bundle,
)
from .keys import FileKeyProvider, InMemoryKeyProvider, KeyProvider, SigningKeyPair
from .summary import AuditSummary, ReplayApplicant, build_audit_summary

__all__ = [
    "AuditEvent",
    "AuditLogParseError",
    "AuditSummary",
    "ChainVerification",
    "FileKeyProvider",
    "GENESIS_HASH",
    "InMemoryKeyProvider",
    "IntegrityManifest",
    "IntegrityVerification",
    "KeyProvider",
    "ReplayApplicant",
    "SignedManifest",
    "SigningKeyPair",
    "append_audit_entry",
    "build_audit_summary",
    "build_integrity_manifest",
    "parse_audit_jsonl",
    "sign_integrity_manifest",
    "to_json_lines",
    "verify_hash_chain",
    "verify_integrity_bundle",
]
