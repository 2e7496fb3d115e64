"""Counter-mode SHA-256 generator and the shuffle it drives."""

from __future__ import annotations

import hashlib
from typing import Sequence, TypeVar

from ..digest import hex_to_bytes

T = TypeVar("T")

_UINT32_RANGE = 1 << 32
_COUNTER_MAX = (1 << 64) - 1


class DeterministicPrng:
    """Pseudo-random stream keyed by a seed hash.

    Block ``k`` is ``SHA-256(seed || k)`` where ``k`` is a 64-bit
    big-endian counter starting at zero. The same seed yields the same
    stream on every platform.
    """

    def __init__(self, seed_hex: str) -> None:
        self._seed = hex_to_bytes(seed_hex)
        if not self._seed:
            raise ValueError("seed must not be empty")
        self._counter = 0

    @property
    def counter(self) -> int:
        """Number of blocks consumed so far."""
        return self._counter

    def next_block(self) -> bytes:
        """Return the next 32-byte output block."""
        if self._counter > _COUNTER_MAX:
            raise RuntimeError("generator counter exhausted")
        digest = hashlib.sha256(self._seed + self._counter.to_bytes(8, "big")).digest()
        self._counter += 1
        return digest

    def next_uint32(self) -> int:
        """Return the first four bytes of the next block as a big-endian integer."""
        return int.from_bytes(self.next_block()[:4], "big")

    def random_index(self, max_exclusive: int) -> int:
        """Return a uniform integer in ``[0, max_exclusive)``.

        Rejection sampling against ``floor(2**32 / n) * n`` removes modulo
        bias exactly.
        """
        if max_exclusive <= 0:
            raise ValueError("max_exclusive must be positive")
        if max_exclusive > _UINT32_RANGE:
            raise ValueError("max_exclusive must not exceed 2**32")
        limit = (_UINT32_RANGE // max_exclusive) * max_exclusive
        while True:
            value = self.next_uint32()
            if value < limit:
                return value % max_exclusive


def deterministic_shuffle(items: Sequence[T], prng: DeterministicPrng) -> list[T]:
    """Return a Fisher-Yates shuffled copy of ``items``.

    Walks from the last index down to 1, swapping position ``i`` with
    ``prng.random_index(i + 1)``. ``items`` itself is left untouched.
    """
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = prng.random_index(i + 1)
        out[i], out[j] = out[j], out[i]
    return out


__all__ = ["DeterministicPrng", "deterministic_shuffle"]
