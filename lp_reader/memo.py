"""
Response Memo — best-effort short-TTL cache of recent responses
===============================================================

Keyed by position id. An optimisation only: a missing or expired entry
is always safe to recompute. Only successful payloads are stored.
"""

import copy
import time
from typing import Any, Callable, Dict, Optional, Tuple


class ResponseMemo:
    """In-memory TTL map. ``ttl_seconds <= 0`` disables it."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def _purge(self, now: float) -> None:
        expired = [k for k, (t, _) in self._entries.items() if now - t >= self._ttl]
        for key in expired:
            del self._entries[key]

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        self._purge(self._clock())
        entry = self._entries.get(key)
        return copy.deepcopy(entry[1]) if entry else None

    def put(self, key: str, value: Any) -> None:
        if self.enabled:
            self._entries[key] = (self._clock(), copy.deepcopy(value))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
