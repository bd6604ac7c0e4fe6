"""In-process TTL cache for computed charts.

Lives in the HTTP layer: the engine never reads or writes it. Entries are keyed
by :func:`astrocalc.services.chart.cache_key`.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ChartCache:
    def __init__(self, ttl_seconds: float = 3600, max_entries: int = 1024):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = int(max_entries)
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "ChartCache":
        return cls(
            ttl_seconds=float(os.getenv("CHART_CACHE_TTL_SECONDS", "3600")),
            max_entries=int(os.getenv("CHART_CACHE_MAX_ENTRIES", "1024")),
        )

    def get(self, key: str) -> Optional[Any]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires, value = entry
            if expires <= now:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        expires = time.monotonic() + self.ttl_seconds
        with self._lock:
            self._entries[key] = (expires, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("chart_cache_evicted", extra={"cache_key": evicted})

    def get_or_generate(self, key: str, factory: Callable[[], Any]) -> Tuple[Any, bool]:
        """Return ``(value, cached)``; ``factory`` runs only on a miss.

        Two threads missing on the same key may both run ``factory``; the
        result is deterministic, so the later write is equivalent.
        """

        value = self.get(key)
        if value is not None:
            return value, True
        value = factory()
        self.set(key, value)
        return value, False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"entries": len(self._entries), "max_entries": self.max_entries, "ttl_seconds": self.ttl_seconds}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
