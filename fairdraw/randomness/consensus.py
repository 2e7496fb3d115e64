"""Consensus policies that turn provider samples into seed inputs.

The price metric takes the median of at least two providers and flags
excessive spread. The beacon metric takes the first successful provider
in priority order: beacons are independent outputs, not estimates of one
quantity, so they are never averaged.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from .client import RandomnessClient
from .providers import (
    BTC_PROVIDERS,
    NIST_PROVIDERS,
    ProviderDef,
    ProviderSample,
    fetch_samples,
)

logger = logging.getLogger(__name__)

PRICE_QUORUM = 2
BEACON_QUORUM = 1
DEFAULT_TOLERANCE_PERCENT = 0.5


class InsufficientRandomnessError(RuntimeError):
    """Raised when a metric did not reach quorum and has no manual override."""

    def __init__(self, metrics: Sequence[str]) -> None:
        super().__init__(
            "Insufficient public randomness for: " + ", ".join(metrics)
        )
        self.metrics = list(metrics)


@dataclass(frozen=True)
class RandomnessMetric:
    """Finalized value of one metric plus full sample provenance.

    ``final_value`` is an empty string when the metric missed quorum.
    """

    metric: str
    final_value: str
    samples: tuple[ProviderSample, ...] = field(default_factory=tuple)
    warning: Optional[str] = None
    manual_override: bool = False

    @property
    def has_value(self) -> bool:
        return bool(self.final_value)

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "metric": self.metric,
            "finalValue": self.final_value,
            "samples": [s.to_json() for s in self.samples],
        }
        if self.warning is not None:
            payload["warning"] = self.warning
        if self.manual_override:
            payload["manualOverride"] = True
        return payload

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "RandomnessMetric":
        return cls(
            metric=str(payload.get("metric", "")),
            final_value=str(payload.get("finalValue", "")),
            samples=tuple(ProviderSample.from_json(s) for s in payload.get("samples") or []),
            warning=payload.get("warning"),
            manual_override=bool(payload.get("manualOverride", False)),
        )


@dataclass(frozen=True)
class PublicRandomness:
    """The two metrics that feed seed derivation."""

    btc: RandomnessMetric
    nist: RandomnessMetric

    def require_final_values(self) -> tuple[str, str]:
        """Return ``(btc, nist)`` final values.

        Raises
        ------
        InsufficientRandomnessError
            If either metric lacks a final value.
        """
        missing = [m.metric for m in (self.btc, self.nist) if not m.has_value]
        if missing:
            raise InsufficientRandomnessError(missing)
        return self.btc.final_value, self.nist.final_value


def median_or_middle_average(values: Sequence[float]) -> float:
    """Return the median; for even counts the mean of the two middle values."""
    if not values:
        raise ValueError("values must not be empty")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def format_price(value: float) -> str:
    """Render ``value`` with two decimals, rounding exact ties away from zero.

    >>> format_price(50000.125)
    '50000.13'
    """
    # Wide enough for every finite double.
    context = Context(prec=400)
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP, context=context))


def spread_percent(values: Sequence[float]) -> float:
    """Return ``(max - min) / midpoint * 100``; zero for fewer than two values."""
    if len(values) < 2:
        return 0.0
    low, high = min(values), max(values)
    baseline = (low + high) / 2 or 1
    return (high - low) / baseline * 100


def aggregate_price_metric(
    metric: str, samples: Sequence[ProviderSample], tolerance_percent: float
) -> RandomnessMetric:
    """Median-of-quorum consensus with a deviation warning."""
    values = [float(s.value) for s in samples if s.ok and s.value is not None]
    final_value = ""
    if len(values) >= PRICE_QUORUM:
        final_value = format_price(median_or_middle_average(values))
    else:
        logger.warning(
            f"{metric} quorum not reached: {len(values)} of {PRICE_QUORUM} providers"
        )
    spread = spread_percent(values)
    warning = None
    if spread > tolerance_percent:
        warning = f"{metric} deviation {spread:.3f}%"
        logger.warning(f"{metric} providers disagree by {spread:.3f}%")
    return RandomnessMetric(
        metric=metric, final_value=final_value, samples=tuple(samples), warning=warning
    )


def aggregate_beacon_metric(
    metric: str, samples: Sequence[ProviderSample]
) -> RandomnessMetric:
    """First successful sample in provider-priority order."""
    successes = [s for s in samples if s.ok and s.value is not None]
    final_value = ""
    if len(successes) >= BEACON_QUORUM:
        final_value = str(int(successes[0].value))
    else:
        logger.warning(f"{metric} quorum not reached: no provider succeeded")
    return RandomnessMetric(metric=metric, final_value=final_value, samples=tuple(samples))


def with_manual_override(metric: RandomnessMetric, value: str) -> RandomnessMetric:
    """Return ``metric`` with an operator-supplied final value.

    The original samples are kept so the audit log still shows why the
    override was needed.
    """
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("override value must not be empty")
    logger.info(f"{metric.metric} final value overridden manually")
    return replace(metric, final_value=cleaned, manual_override=True)


def default_tolerance_percent() -> float:
    load_dotenv()
    raw = os.getenv("RANDOMNESS_TOLERANCE_PERCENT")
    if not raw:
        return DEFAULT_TOLERANCE_PERCENT
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid RANDOMNESS_TOLERANCE_PERCENT value: {raw!r}") from exc


def fetch_public_randomness(
    client: Optional[RandomnessClient] = None,
    *,
    tolerance_percent: Optional[float] = None,
    btc_providers: Sequence[ProviderDef] = BTC_PROVIDERS,
    nist_providers: Sequence[ProviderDef] = NIST_PROVIDERS,
) -> PublicRandomness:
    """Sample every provider and compute both metrics.

    Missing quorum does not raise here; check
    :meth:`PublicRandomness.require_final_values` before deriving a seed.
    """
    if client is None:
        client = RandomnessClient()
    tolerance = default_tolerance_percent() if tolerance_percent is None else tolerance_percent

    btc_samples = fetch_samples(client, btc_providers)
    nist_samples = fetch_samples(client, nist_providers)
    return PublicRandomness(
        btc=aggregate_price_metric("BTC", btc_samples, tolerance),
        nist=aggregate_beacon_metric("NIST", nist_samples),
    )


__all__ = [
    "InsufficientRandomnessError",
    "PublicRandomness",
    "RandomnessMetric",
    "aggregate_beacon_metric",
    "aggregate_price_metric",
    "fetch_public_randomness",
    "format_price",
    "median_or_middle_average",
    "spread_percent",
    "with_manual_override",
]
