"""Signed manifest binding the exported audit log and summary together."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from ..digest import canonical_bytes, sha256_hex
from ..db.utils import iso_utc
from .keys import KeyProvider, P256_COORDINATE_BYTES, public_key_from_jwk

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1
MANIFEST_TYPE = "AUDIT_JSON_INTEGRITY"
HASH_ALGORITHM = "SHA-256"


def compact_manifest_bytes(payload: Mapping[str, Any]) -> bytes:
    """Serialize ``payload`` compactly, keeping its key order.

    This is the form the manifest is signed in; it matches a browser's
    ``JSON.stringify`` of the same object.
    """
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def _signed_forms(payload: Mapping[str, Any]) -> list[bytes]:
    # Every field of the published manifest is covered by both forms.
    compact = compact_manifest_bytes(payload)
    canonical = canonical_bytes(payload)
    return [compact] if compact == canonical else [compact, canonical]


@dataclass(frozen=True)
class IntegrityManifest:
    """Digests of the two primary audit artifacts.

    Attributes
    ----------
    generated_at : str
        ISO-8601 UTC time the manifest was built.
    audit_jsonl_sha256 : str
        SHA-256 of the exact ``audit.jsonl`` text.
    audit_summary_json_sha256 : str
        SHA-256 of the exact ``audit_summary.json`` text.
    """

    generated_at: str
    audit_jsonl_sha256: str
    audit_summary_json_sha256: str
    version: int = MANIFEST_VERSION
    type: str = MANIFEST_TYPE
    hash_algorithm: str = HASH_ALGORITHM

    def to_json(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "type": self.type,
            "generatedAt": self.generated_at,
            "hashAlgorithm": self.hash_algorithm,
            "targets": {
                "audit_jsonl_sha256": self.audit_jsonl_sha256,
                "audit_summary_json_sha256": self.audit_summary_json_sha256,
            },
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False, indent=2)

    def signing_bytes(self) -> bytes:
        """Return the bytes covered by the signature."""
        return compact_manifest_bytes(self.to_json())

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "IntegrityManifest":
        """Build a manifest from its decoded JSON form.

        Raises
        ------
        ValueError
            If a required field is missing or mistyped.
        """
        targets = payload.get("targets")
        if not isinstance(targets, Mapping):
            raise ValueError("manifest field 'targets' must be an object")
        values = {
            "generatedAt": payload.get("generatedAt"),
            "hashAlgorithm": payload.get("hashAlgorithm"),
            "type": payload.get("type"),
            "targets.audit_jsonl_sha256": targets.get("audit_jsonl_sha256"),
            "targets.audit_summary_json_sha256": targets.get("audit_summary_json_sha256"),
        }
        for name, value in values.items():
            if not isinstance(value, str):
                raise ValueError(f"manifest field '{name}' must be a string")
        version = payload.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError("manifest field 'version' must be an integer")
        return cls(
            generated_at=values["generatedAt"],
            audit_jsonl_sha256=values["targets.audit_jsonl_sha256"],
            audit_summary_json_sha256=values["targets.audit_summary_json_sha256"],
            version=version,
            type=values["type"],
            hash_algorithm=values["hashAlgorithm"],
        )


@dataclass(frozen=True)
class SignedManifest:
    """Manifest plus detached base64 signature and the public JWK."""

    manifest: IntegrityManifest
    signature_base64: str
    public_jwk: Mapping[str, Any]

    @property
    def public_key_text(self) -> str:
        return json.dumps(dict(self.public_jwk), indent=2)


@dataclass(frozen=True)
class IntegrityVerification:
    """Independent digest and signature verdicts for an audit bundle."""

    hash_ok: bool
    signature_ok: bool
    reasons: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.hash_ok and self.signature_ok


def build_integrity_manifest(
    audit_jsonl_text: str,
    audit_summary_text: str,
    *,
    now: Optional[datetime] = None,
) -> IntegrityManifest:
    """Hash both artifacts exactly as they will be written."""
    return IntegrityManifest(
        generated_at=iso_utc(now),
        audit_jsonl_sha256=sha256_hex(audit_jsonl_text),
        audit_summary_json_sha256=sha256_hex(audit_summary_text),
    )


def _der_to_raw(der_signature: bytes) -> bytes:
    r, s = decode_dss_signature(der_signature)
    return r.to_bytes(P256_COORDINATE_BYTES, "big") + s.to_bytes(P256_COORDINATE_BYTES, "big")


def _raw_to_der(raw_signature: bytes) -> bytes:
    # Raw ``r || s`` is the WebCrypto encoding; anything else is taken as DER.
    if len(raw_signature) != 2 * P256_COORDINATE_BYTES:
        return raw_signature
    r = int.from_bytes(raw_signature[:P256_COORDINATE_BYTES], "big")
    s = int.from_bytes(raw_signature[P256_COORDINATE_BYTES:], "big")
    return encode_dss_signature(r, s)


def _signature_matches(
    public_key: ec.EllipticCurvePublicKey, signature: bytes, data: bytes
) -> bool:
    try:
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


def sign_integrity_manifest(
    manifest: IntegrityManifest, key_provider: KeyProvider
) -> SignedManifest:
    """Sign the compact manifest bytes with ECDSA P-256 over SHA-256.

    Parameters
    ----------
    manifest : IntegrityManifest
        Manifest to sign.
    key_provider : KeyProvider
        Source of the process-wide signing key.

    Returns
    -------
    SignedManifest
        The manifest, a base64 raw ``r || s`` signature and the public JWK.
    """
    key_pair = key_provider.get_or_create_key_pair()
    der = key_pair.private_key.sign(manifest.signing_bytes(), ec.ECDSA(hashes.SHA256()))
    signature = base64.b64encode(_der_to_raw(der)).decode("ascii")
    logger.debug("Integrity manifest signed")
    return SignedManifest(
        manifest=manifest,
        signature_base64=signature,
        public_jwk=key_pair.public_jwk,
    )


def verify_integrity_bundle(
    *,
    manifest_text: str,
    signature_base64: str,
    public_key_text: str,
    audit_jsonl_text: str,
    audit_summary_text: str,
) -> IntegrityVerification:
    """Check artifact digests and the manifest signature independently.

    Malformed input never raises; it produces a negative verdict with a
    reason. A digest mismatch does not stop the signature check and vice
    versa.

    The signature is checked against the whole published manifest object,
    serialized compactly in its published key order or with sorted keys.
    Fields the manifest type does not model are still covered.
    """
    reasons: list[str] = []

    try:
        payload = json.loads(manifest_text)
        manifest = IntegrityManifest.from_json(payload)
    except (ValueError, TypeError, AttributeError) as exc:
        return IntegrityVerification(
            hash_ok=False,
            signature_ok=False,
            reasons=[f"integrity manifest could not be parsed: {exc}"],
        )

    if manifest.hash_algorithm != HASH_ALGORITHM:
        hash_ok = False
        reasons.append(f"unsupported hash algorithm '{manifest.hash_algorithm}'")
    else:
        jsonl_ok = sha256_hex(audit_jsonl_text) == manifest.audit_jsonl_sha256
        summary_ok = sha256_hex(audit_summary_text) == manifest.audit_summary_json_sha256
        hash_ok = jsonl_ok and summary_ok
        if not jsonl_ok:
            reasons.append("audit.jsonl digest does not match the manifest")
        if not summary_ok:
            reasons.append("audit_summary.json digest does not match the manifest")

    signature_ok = False
    public_key: Optional[ec.EllipticCurvePublicKey] = None
    try:
        jwk = json.loads(public_key_text)
        if not isinstance(jwk, Mapping):
            raise ValueError("public key must be a JSON object")
        public_key = public_key_from_jwk(jwk)
    except (ValueError, TypeError) as exc:
        reasons.append(f"public key could not be parsed: {exc}")

    if public_key is not None:
        try:
            signature = _raw_to_der(base64.b64decode(signature_base64.strip(), validate=True))
        except (binascii.Error, ValueError) as exc:
            reasons.append(f"signature is not valid base64: {exc}")
        else:
            try:
                signature_ok = any(
                    _signature_matches(public_key, signature, data)
                    for data in _signed_forms(payload)
                )
                if not signature_ok:
                    reasons.append("manifest signature is invalid")
            except ValueError as exc:
                reasons.append(f"signature is malformed: {exc}")

    return IntegrityVerification(hash_ok=hash_ok, signature_ok=signature_ok, reasons=reasons)


__all__ = [
    "HASH_ALGORITHM",
    "IntegrityManifest",
    "IntegrityVerification",
    "MANIFEST_TYPE",
    "SignedManifest",
    "build_integrity_manifest",
    "compact_manifest_bytes",
    "sign_integrity_manifest",
    "verify_integrity_bundle",
]
