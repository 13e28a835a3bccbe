"""Process-wide memoization of title lookups."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable

from ..models import Failed, LookupOutcome


class LookupCache:
    """Bounded LRU cache of normalized title to lookup outcome.

    Matches and confirmed misses never expire; failures are kept for
    ``failure_ttl_seconds`` only. A ``max_entries`` of zero disables the
    capacity bound.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        *,
        failure_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max(0, int(max_entries))
        self._failure_ttl = max(0.0, float(failure_ttl_seconds))
        self._clock = clock
        self._data: "OrderedDict[str, tuple[float | None, LookupOutcome]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def clear(self) -> None:
        self._data.clear()

    def get(self, key: str) -> LookupOutcome | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, outcome = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return outcome

    def put(self, key: str, outcome: LookupOutcome) -> None:
        expires_at: float | None = None
        if isinstance(outcome, Failed):
            if self._failure_ttl <= 0:
                self._data.pop(key, None)
                return
            expires_at = self._clock() + self._failure_ttl
        self._data[key] = (expires_at, outcome)
        self._data.move_to_end(key)
        if self._max_entries:
            while len(self._data) > self._max_entries:
                self._data.popitem(last=False)
