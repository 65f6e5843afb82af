"""Bounded per-pair price history fed by the refresh and alert loops.

Each pair owns a deque with maxlen equal to the configured cap, so an
append past the cap evicts the oldest point in O(1). Reads hand out an
immutable tuple copy taken under the lock, so indicator computation never
sees a half-applied append.
"""

import asyncio
from collections import deque

from fxsignal.models import PricePoint


class HistoryStore:
    """Append-only, FIFO-capped rate history keyed by pair id.

    Args:
        max_length: Maximum points kept per pair (100 by default, 50 on the
            constrained profile).
    """

    def __init__(self, max_length: int = 100) -> None:
        if max_length < 1:
            raise ValueError("max_length must be at least 1")
        self._max_length = max_length
        self._series: dict[str, deque[PricePoint]] = {}
        self._lock = asyncio.Lock()

    @property
    def max_length(self) -> int:
        return self._max_length

    async def append(self, pair_id: str, point: PricePoint) -> int:
        """Append a point, evicting the oldest past the cap. Returns the new length."""
        async with self._lock:
            series = self._series.get(pair_id)
            if series is None:
                series = deque(maxlen=self._max_length)
                self._series[pair_id] = series
            series.append(point)
            return len(series)

    async def read(self, pair_id: str) -> tuple[PricePoint, ...]:
        """Return an isolated snapshot of the pair's history, oldest first."""
        async with self._lock:
            series = self._series.get(pair_id)
            return tuple(series) if series is not None else ()

    async def length(self, pair_id: str) -> int:
        async with self._lock:
            series = self._series.get(pair_id)
            return len(series) if series is not None else 0
