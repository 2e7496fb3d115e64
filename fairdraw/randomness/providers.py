"""Provider definitions and per-provider sampling with fallback trails."""

from __future__ import annotations

import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Union

from ..db.utils import iso_utc
from ..digest import sha256_hex
from .client import RandomnessClient

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Beacon outputs are truncated to their last 13 hex digits (52 bits) so the
# value is exactly representable in an IEEE double.
BEACON_HEX_DIGITS = 13


@dataclass(frozen=True)
class ProviderDef:
    """A named randomness source and the parser for its response text."""

    name: str
    url: str
    parse: Callable[[str], Number]


@dataclass(frozen=True)
class ProviderSample:
    """Outcome of querying one provider.

    A failed sample keeps ``ok=False``, ``value=None`` and an ``error`` that
    lists every URL attempted.
    """

    provider: str
    url: str
    retrieved_at: str
    ok: bool
    value: Optional[Number] = None
    requested_url: Optional[str] = None
    raw_sha256: str = ""
    error: Optional[str] = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "provider": self.provider,
            "url": self.url,
            "requestedUrl": self.requested_url,
            "retrievedAt": self.retrieved_at,
            "value": self.value,
            "rawSha256": self.raw_sha256,
            "ok": self.ok,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "ProviderSample":
        return cls(
            provider=str(payload.get("provider", "")),
            url=str(payload.get("url", "")),
            retrieved_at=str(payload.get("retrievedAt", "")),
            ok=bool(payload.get("ok", False)),
            value=payload.get("value"),
            requested_url=payload.get("requestedUrl"),
            raw_sha256=str(payload.get("rawSha256", "")),
            error=payload.get("error"),
        )


def _parse_beacon_hex(hex_value: Any) -> int:
    if not isinstance(hex_value, str) or not hex_value:
        raise ValueError("beacon output value missing")
    return int(hex_value[-BEACON_HEX_DIGITS:], 16)


def parse_coingecko(raw: str) -> float:
    return float(json.loads(raw)["bitcoin"]["usd"])


def parse_coinbase(raw: str) -> float:
    return float(json.loads(raw)["data"]["amount"])


def parse_binance(raw: str) -> float:
    return float(json.loads(raw)["price"])


def parse_nist_beacon(raw: str) -> int:
    pulse = json.loads(raw).get("pulse") or {}
    return _parse_beacon_hex(pulse.get("outputValue"))


def parse_drand(raw: str) -> int:
    return _parse_beacon_hex(json.loads(raw).get("randomness"))


BTC_PROVIDERS: tuple[ProviderDef, ...] = (
    ProviderDef(
        name="coingecko",
        url="https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd",
        parse=parse_coingecko,
    ),
    ProviderDef(
        name="coinbase",
        url="https://api.coinbase.com/v2/prices/spot?currency=USD",
        parse=parse_coinbase,
    ),
    ProviderDef(
        name="binance",
        url="https://api.binance.com/api/v3/ticker/price?symbol=BTCUSDT",
        parse=parse_binance,
    ),
)

NIST_PROVIDERS: tuple[ProviderDef, ...] = (
    ProviderDef(
        name="nist_beacon",
        url="https://beacon.nist.gov/beacon/2.0/pulse/last",
        parse=parse_nist_beacon,
    ),
    ProviderDef(
        name="drand_cloudflare",
        url="https://drand.cloudflare.com/public/latest",
        parse=parse_drand,
    ),
)


def fetch_sample(client: RandomnessClient, provider: ProviderDef) -> ProviderSample:
    """Query ``provider`` through every candidate URL until one parses.

    Never raises for transport or parse failures; those produce a failed
    sample whose ``error`` lists every attempted URL with the reason it
    failed.
    """
    retrieved_at = iso_utc()
    tried: list[str] = []
    failures: list[str] = []
    for candidate in client.request_candidates(provider.url):
        tried.append(candidate)
        try:
            text = client.fetch_text(candidate)
            value = provider.parse(text)
            if isinstance(value, bool) or not math.isfinite(value):
                raise ValueError("non-finite value")
        except (
            RuntimeError,
            ValueError,
            ArithmeticError,
            KeyError,
            TypeError,
            AttributeError,
        ) as exc:
            logger.debug(f"Provider {provider.name} attempt {len(tried)} failed: {exc}")
            failures.append(f"{candidate} ({type(exc).__name__}: {exc})")
            continue
        return ProviderSample(
            provider=provider.name,
            url=provider.url,
            requested_url=candidate,
            retrieved_at=retrieved_at,
            value=value,
            raw_sha256=sha256_hex(text),
            ok=True,
        )

    logger.warning(f"Provider {provider.name} failed after {len(tried)} attempts")
    return ProviderSample(
        provider=provider.name,
        url=provider.url,
        requested_url=tried[-1] if tried else None,
        retrieved_at=retrieved_at,
        ok=False,
        error=f"all attempts failed ({len(tried)}): {' | '.join(failures)}",
    )


def fetch_samples(
    client: RandomnessClient, providers: Sequence[ProviderDef]
) -> list[ProviderSample]:
    """Query all ``providers`` concurrently and wait for every one of them.

    Samples are returned in provider order regardless of completion order.
    """
    if not providers:
        return []
    with ThreadPoolExecutor(max_workers=len(providers)) as pool:
        futures = [pool.submit(fetch_sample, client, provider) for provider in providers]
        return [future.result() for future in futures]


__all__ = [
    "BTC_PROVIDERS",
    "NIST_PROVIDERS",
    "ProviderDef",
    "ProviderSample",
    "fetch_sample",
    "fetch_samples",
    "parse_binance",
    "parse_coinbase",
    "parse_coingecko",
    "parse_drand",
    "parse_nist_beacon",
]
