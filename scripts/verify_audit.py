#!/usr/bin/env python3
"""Verify an exported lottery audit package.

Checks the integrity manifest (artifact digests and ECDSA signature), walks
the audit hash chain and replays the draw from the published summary.

Usage:
    python scripts/verify_audit.py path/to/package
    python scripts/verify_audit.py path/to/package --lookup <anon-or-member-id>

Exit Codes:
    0 = Package verified
    1 = Verification failed
    2 = Package could not be read
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from fairdraw.audit.export import (
    AUDIT_JSONL,
    AUDIT_SUMMARY,
    MANIFEST,
    PUBLIC_KEY,
    SIGNATURE,
    read_audit_package,
)
from fairdraw.audit.integrity import verify_integrity_bundle
from fairdraw.verify.replay import verify_individual_result, verify_published_artifacts


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify an exported lottery audit package")
    parser.add_argument("directory", help="Directory holding the exported artifacts")
    parser.add_argument(
        "--lookup",
        help="Anon id or member id to report the individual outcome for",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        files = read_audit_package(Path(args.directory))
    except OSError as exc:
        print(f"Could not read audit package: {exc}", file=sys.stderr)
        return 2

    integrity = verify_integrity_bundle(
        manifest_text=files[MANIFEST],
        signature_base64=files[SIGNATURE],
        public_key_text=files[PUBLIC_KEY],
        audit_jsonl_text=files[AUDIT_JSONL],
        audit_summary_text=files[AUDIT_SUMMARY],
    )
    replay = verify_published_artifacts(files[AUDIT_SUMMARY], files[AUDIT_JSONL])

    print(f"Digests: {'OK' if integrity.hash_ok else 'MISMATCH'}")
    print(f"Signature: {'OK' if integrity.signature_ok else 'INVALID'}")
    print(f"Hash chain: {'OK' if replay.chain_ok else 'BROKEN'}")
    print(f"Replay: {'OK' if replay.replay_ok else 'MISMATCH'}")
    for reason in [*integrity.reasons, *replay.reasons]:
        print(f"  - {reason}")

    if args.lookup and replay.replay_result is not None:
        individual = verify_individual_result(args.lookup, replay.replay_result)
        line = f"Lookup {args.lookup}: {individual.status.value}"
        if individual.waitlist_rank is not None:
            line += f" (rank {individual.waitlist_rank})"
        print(line)

    if integrity.ok and replay.replay_ok:
        print("Status: VERIFIED")
        return 0
    print("Status: FAILED")
    return 1


if __name__ == "__main__":
    sys.exit(main())
