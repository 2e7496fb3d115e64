"""Hashing and canonical serialization shared by every lottery component."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable


def hex_to_bytes(value: str) -> bytes:
    """Decode a hex string, tolerating surrounding whitespace and upper case.

    Raises
    ------
    ValueError
        If ``value`` is not an even-length hex string.
    """
    cleaned = value.strip().lower()
    if len(cleaned) % 2:
        raise ValueError("hex string must have an even number of characters")
    return bytes.fromhex(cleaned)


def sha256_hex(text: str) -> str:
    """Return the SHA-256 hex digest of ``text`` encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def concat_and_hash_hex(parts: Iterable[str]) -> str:
    """Join ``parts`` with newlines and hash the result."""
    return sha256_hex("\n".join(parts))


def _normalize(value: Any) -> Any:
    # Integral floats serialize as integers so that ``100.0`` and ``100``
    # hash the same regardless of which serializer produced them.
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def canonical_json(value: Any) -> str:
    """Serialize ``value`` with recursively sorted keys and compact separators.

    Arrays keep their order. Non-ASCII characters are emitted verbatim, and
    non-finite floats become ``null``. The output is used both to compute
    and to verify hashes, so it must not change between releases.
    """
    return json.dumps(
        _normalize(value),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def canonical_bytes(value: Any) -> bytes:
    """Return :func:`canonical_json` encoded as UTF-8."""
    return canonical_json(value).encode("utf-8")


__all__ = [
    "canonical_bytes",
    "canonical_json",
    "concat_and_hash_hex",
    "hex_to_bytes",
    "sha256_hex",
]
