"""Signing key providers for the integrity manifest.

A provider hands out one P-256 key pair for the lifetime of the process.
Where the key lives is the provider's business: memory for tests, a
directory on disk for operators.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

P256_COORDINATE_BYTES = 32
PRIVATE_KEY_FILENAME = "integrity_signing_key.pem"
PUBLIC_KEY_FILENAME = "integrity_public_key.jwk"


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def public_key_to_jwk(public_key: ec.EllipticCurvePublicKey) -> dict[str, Any]:
    """Export a P-256 public key as a JSON Web Key."""
    if not isinstance(public_key.curve, ec.SECP256R1):
        raise ValueError("only P-256 keys are supported")
    numbers = public_key.public_numbers()
    return {
        "kty": "EC",
        "crv": "P-256",
        "x": _b64url_encode(numbers.x.to_bytes(P256_COORDINATE_BYTES, "big")),
        "y": _b64url_encode(numbers.y.to_bytes(P256_COORDINATE_BYTES, "big")),
        "ext": True,
        "key_ops": ["verify"],
    }


def public_key_from_jwk(jwk: Mapping[str, Any]) -> ec.EllipticCurvePublicKey:
    """Load a P-256 public key from a JSON Web Key mapping.

    Raises
    ------
    ValueError
        If the JWK is not an EC P-256 key or its coordinates are malformed.
    """
    if jwk.get("kty") != "EC" or jwk.get("crv") != "P-256":
        raise ValueError("JWK must describe an EC P-256 key")
    x_raw, y_raw = jwk.get("x"), jwk.get("y")
    if not isinstance(x_raw, str) or not isinstance(y_raw, str):
        raise ValueError("JWK coordinates 'x' and 'y' must be strings")
    try:
        x = int.from_bytes(_b64url_decode(x_raw), "big")
        y = int.from_bytes(_b64url_decode(y_raw), "big")
    except (ValueError, TypeError) as exc:
        raise ValueError(f"JWK coordinates are not base64url: {exc}") from exc
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()


@dataclass(frozen=True)
class SigningKeyPair:
    """A P-256 private key together with its exported public JWK."""

    private_key: ec.EllipticCurvePrivateKey

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self.private_key.public_key()

    @property
    def public_jwk(self) -> dict[str, Any]:
        return public_key_to_jwk(self.public_key)

    @classmethod
    def generate(cls) -> "SigningKeyPair":
        return cls(private_key=ec.generate_private_key(ec.SECP256R1()))


class KeyProvider(Protocol):
    """Capability that returns the process-wide signing key pair."""

    def get_or_create_key_pair(self) -> SigningKeyPair:
        ...


class InMemoryKeyProvider:
    """Generate a key pair on first use and keep it in memory."""

    def __init__(self, key_pair: Optional[SigningKeyPair] = None) -> None:
        self._key_pair = key_pair

    def get_or_create_key_pair(self) -> SigningKeyPair:
        if self._key_pair is None:
            self._key_pair = SigningKeyPair.generate()
            logger.debug("Generated in-memory integrity signing key")
        return self._key_pair


class FileKeyProvider:
    """Persist the key pair in a directory.

    The private key is stored as unencrypted PKCS#8 PEM with ``0600``
    permissions, next to the public JWK that gets published with each
    audit package.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None) -> None:
        """Create a provider rooted at ``directory``.

        Parameters
        ----------
        directory : Optional[Union[str, Path]], default: None
            Key directory. Falls back to ``FAIRDRAW_KEY_DIR``.

        Raises
        ------
        ValueError
            If neither ``directory`` nor ``FAIRDRAW_KEY_DIR`` is set.
        """
        load_dotenv()
        configured = directory or os.getenv("FAIRDRAW_KEY_DIR")
        if not configured:
            raise ValueError("Environment variable 'FAIRDRAW_KEY_DIR' is not set")
        self.directory = Path(configured)
        self._key_pair: Optional[SigningKeyPair] = None

    @property
    def private_key_path(self) -> Path:
        return self.directory / PRIVATE_KEY_FILENAME

    @property
    def public_key_path(self) -> Path:
        return self.directory / PUBLIC_KEY_FILENAME

    def get_or_create_key_pair(self) -> SigningKeyPair:
        if self._key_pair is not None:
            return self._key_pair
        if self.private_key_path.exists():
            self._key_pair = self._load()
            logger.debug(f"Loaded integrity signing key from {self.directory}")
        else:
            self._key_pair = SigningKeyPair.generate()
            self._store(self._key_pair)
            logger.info(f"Created integrity signing key in {self.directory}")
        return self._key_pair

    def _load(self) -> SigningKeyPair:
        private_key = serialization.load_pem_private_key(
            self.private_key_path.read_bytes(), password=None
        )
        if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(
            private_key.curve, ec.SECP256R1
        ):
            raise ValueError("Stored key must be an EC P-256 private key")
        return SigningKeyPair(private_key=private_key)

    def _store(self, key_pair: SigningKeyPair) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        pem = key_pair.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        fd = os.open(self.private_key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(pem)
        self.public_key_path.write_text(
            json.dumps(key_pair.public_jwk, indent=2), encoding="utf-8"
        )


__all__ = [
    "FileKeyProvider",
    "InMemoryKeyProvider",
    "KeyProvider",
    "SigningKeyPair",
    "public_key_from_jwk",
    "public_key_to_jwk",
]
