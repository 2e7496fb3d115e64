import base64
import json
import os
import stat
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from fairdraw.audit import (
    FileKeyProvider,
    InMemoryKeyProvider,
    SigningKeyPair,
    build_integrity_manifest,
    sign_integrity_manifest,
    verify_integrity_bundle,
)
from fairdraw.audit.keys import public_key_from_jwk, public_key_to_jwk
from fairdraw.digest import canonical_bytes, sha256_hex

NOW = datetime(2025, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
JSONL = '{"event_type":"CONFIG_LOCKED"}\n{"event_type":"DRAW_EXECUTED"}'
SUMMARY = '{\n  "runId": "run-1"\n}'


class IntegrityTestCase(unittest.TestCase):
    def setUp(self):
        self.provider = InMemoryKeyProvider()
        self.manifest = build_integrity_manifest(JSONL, SUMMARY, now=NOW)
        self.signed = sign_integrity_manifest(self.manifest, self.provider)

    def verify(self, **overrides):
        kwargs = dict(
            manifest_text=self.signed.manifest.to_json_str(),
            signature_base64=self.signed.signature_base64,
            public_key_text=self.signed.public_key_text,
            audit_jsonl_text=JSONL,
            audit_summary_text=SUMMARY,
        )
        kwargs.update(overrides)
        return verify_integrity_bundle(**kwargs)


class TestIntegrityManifest(IntegrityTestCase):
    def test_manifest_shape(self):
        payload = json.loads(self.manifest.to_json_str())
        self.assertEqual(payload["version"], 1)
        self.assertEqual(payload["type"], "AUDIT_JSON_INTEGRITY")
        self.assertEqual(payload["hashAlgorithm"], "SHA-256")
        self.assertEqual(payload["generatedAt"], "2025-05-01T12:00:00.000Z")
        self.assertEqual(
            payload["targets"],
            {
                "audit_jsonl_sha256": sha256_hex(JSONL),
                "audit_summary_json_sha256": sha256_hex(SUMMARY),
            },
        )

    def test_signature_is_raw_64_bytes(self):
        self.assertEqual(len(base64.b64decode(self.signed.signature_base64)), 64)

    def test_valid_bundle_verifies(self):
        verdict = self.verify()
        self.assertTrue(verdict.hash_ok)
        self.assertTrue(verdict.signature_ok)
        self.assertTrue(verdict.ok)
        self.assertEqual(verdict.reasons, [])

    def test_tampered_log_is_a_hash_failure_only(self):
        verdict = self.verify(audit_jsonl_text=JSONL + "\n{}")
        self.assertFalse(verdict.hash_ok)
        self.assertTrue(verdict.signature_ok)
        self.assertIn("audit.jsonl digest does not match the manifest", verdict.reasons)

    def test_tampered_summary_reported_separately(self):
        verdict = self.verify(audit_summary_text=SUMMARY + " ")
        self.assertEqual(
            verdict.reasons, ["audit_summary.json digest does not match the manifest"]
        )

    def test_rewritten_manifest_is_a_signature_failure_only(self):
        forged_jsonl = JSONL + "\n{}"
        payload = json.loads(self.signed.manifest.to_json_str())
        payload["targets"]["audit_jsonl_sha256"] = sha256_hex(forged_jsonl)
        verdict = self.verify(manifest_text=json.dumps(payload), audit_jsonl_text=forged_jsonl)
        self.assertTrue(verdict.hash_ok)
        self.assertFalse(verdict.signature_ok)
        self.assertIn("manifest signature is invalid", verdict.reasons)

    def test_manifest_whitespace_does_not_matter(self):
        compact = json.dumps(self.signed.manifest.to_json(), separators=(",", ":"))
        self.assertTrue(self.verify(manifest_text=compact).ok)

    def test_other_key_rejected(self):
        other = SigningKeyPair.generate()
        verdict = self.verify(public_key_text=json.dumps(other.public_jwk))
        self.assertTrue(verdict.hash_ok)
        self.assertFalse(verdict.signature_ok)

    def test_unparseable_public_key_still_checks_hashes(self):
        verdict = self.verify(public_key_text="not a key", audit_jsonl_text="tampered")
        self.assertFalse(verdict.hash_ok)
        self.assertFalse(verdict.signature_ok)
        self.assertTrue(any(r.startswith("public key could not be parsed") for r in verdict.reasons))

    def test_wrong_curve_jwk_rejected(self):
        verdict = self.verify(public_key_text=json.dumps({"kty": "OKP", "crv": "Ed25519"}))
        self.assertFalse(verdict.signature_ok)

    def test_bad_base64_signature(self):
        verdict = self.verify(signature_base64="@@not base64@@")
        self.assertFalse(verdict.signature_ok)
        self.assertTrue(any(r.startswith("signature is not valid base64") for r in verdict.reasons))

    def test_der_signature_accepted(self):
        key_pair = self.provider.get_or_create_key_pair()
        der = key_pair.private_key.sign(
            self.signed.manifest.signing_bytes(), ec.ECDSA(hashes.SHA256())
        )
        self.assertTrue(self.verify(signature_base64=base64.b64encode(der).decode()).ok)

    def test_field_added_after_signing_is_rejected(self):
        payload = json.loads(self.signed.manifest.to_json_str())
        payload["note"] = "added later"
        verdict = self.verify(manifest_text=json.dumps(payload, indent=2))
        self.assertTrue(verdict.hash_ok)
        self.assertFalse(verdict.signature_ok)
        self.assertIn("manifest signature is invalid", verdict.reasons)

    def test_signing_bytes_follow_declared_key_order(self):
        expected = (
            '{"version":1,"type":"AUDIT_JSON_INTEGRITY",'
            '"generatedAt":"2025-05-01T12:00:00.000Z","hashAlgorithm":"SHA-256",'
            f'"targets":{{"audit_jsonl_sha256":"{sha256_hex(JSONL)}",'
            f'"audit_summary_json_sha256":"{sha256_hex(SUMMARY)}"}}}}'
        )
        self.assertEqual(self.manifest.signing_bytes(), expected.encode("utf-8"))

    def sign_raw(self, data: bytes) -> str:
        key_pair = self.provider.get_or_create_key_pair()
        der = key_pair.private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return base64.b64encode(r.to_bytes(32, "big") + s.to_bytes(32, "big")).decode()

    def test_browser_signed_bundle_verifies(self):
        # Published manifest with its own key order, signed as JSON.stringify would emit it.
        payload = {
            "version": 1,
            "type": "AUDIT_JSON_INTEGRITY",
            "generatedAt": "2025-05-01T12:00:00.000Z",
            "hashAlgorithm": "SHA-256",
            "targets": {
                "audit_summary_json_sha256": sha256_hex(SUMMARY),
                "audit_jsonl_sha256": sha256_hex(JSONL),
            },
        }
        signature = self.sign_raw(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        verdict = self.verify(
            manifest_text=json.dumps(payload, indent=2), signature_base64=signature
        )
        self.assertTrue(verdict.ok, verdict.reasons)

    def test_sorted_key_signature_verifies(self):
        signature = self.sign_raw(canonical_bytes(self.manifest.to_json()))
        self.assertTrue(self.verify(signature_base64=signature).ok)

    def test_unparseable_manifest(self):
        verdict = self.verify(manifest_text="{")
        self.assertFalse(verdict.hash_ok)
        self.assertFalse(verdict.signature_ok)
        self.assertTrue(verdict.reasons[0].startswith("integrity manifest could not be parsed"))

    def test_manifest_missing_targets(self):
        verdict = self.verify(manifest_text=json.dumps({"version": 1}))
        self.assertFalse(verdict.ok)


class TestKeyProviders(unittest.TestCase):
    def test_in_memory_provider_reuses_key(self):
        provider = InMemoryKeyProvider()
        self.assertIs(provider.get_or_create_key_pair(), provider.get_or_create_key_pair())

    def test_jwk_round_trip(self):
        key_pair = SigningKeyPair.generate()
        jwk = key_pair.public_jwk
        self.assertEqual((jwk["kty"], jwk["crv"]), ("EC", "P-256"))
        restored = public_key_from_jwk(jwk)
        self.assertEqual(public_key_to_jwk(restored), jwk)

    def test_file_provider_creates_then_loads(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            first = FileKeyProvider(Path(tmpdir) / "keys")
            created = first.get_or_create_key_pair()
            self.assertTrue(first.private_key_path.exists())
            self.assertEqual(
                json.loads(first.public_key_path.read_text(encoding="utf-8")),
                created.public_jwk,
            )
            if os.name == "posix":
                mode = stat.S_IMODE(first.private_key_path.stat().st_mode)
                self.assertEqual(mode, 0o600)

            loaded = FileKeyProvider(Path(tmpdir) / "keys").get_or_create_key_pair()
            self.assertEqual(loaded.public_jwk, created.public_jwk)

    def test_private_key_created_with_owner_only_mode(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            provider = FileKeyProvider(tmpdir)
            with patch("fairdraw.audit.keys.os.open", wraps=os.open) as mock_open:
                provider.get_or_create_key_pair()
            key_calls = [
                c.args for c in mock_open.call_args_list
                if Path(c.args[0]) == provider.private_key_path
            ]
            self.assertEqual(len(key_calls), 1)
            _, flags, mode = key_calls[0]
            self.assertTrue(flags & os.O_CREAT and flags & os.O_EXCL)
            self.assertEqual(mode, 0o600)

    def test_existing_private_key_is_never_overwritten(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            provider = FileKeyProvider(tmpdir)
            provider.private_key_path.write_bytes(b"placeholder")
            with self.assertRaises(FileExistsError):
                provider._store(SigningKeyPair.generate())
            self.assertEqual(provider.private_key_path.read_bytes(), b"placeholder")

    def test_file_provider_reads_directory_from_env(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(os.environ, {"FAIRDRAW_KEY_DIR": tmpdir}):
                provider = FileKeyProvider()
            self.assertEqual(provider.directory, Path(tmpdir))

    @patch("fairdraw.audit.keys.load_dotenv")
    def test_file_provider_requires_directory(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                FileKeyProvider()


if __name__ == "__main__":
    unittest.main()
