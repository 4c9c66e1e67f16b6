"""In-memory opportunity cache with sweep-based expiry.

Entries are evicted only by ``sweep()``, which the background sweeper runs
on a fixed interval, or by ``clear()``. The cache stores and hands out
copies, so callers never hold a reference into the cache's own map.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from opportunity_engine.models import RawOpportunity

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    opportunity: RawOpportunity
    inserted_at: float


class OpportunityCache:
    def __init__(
        self,
        ttl_seconds: float = 30 * 60,
        sweep_interval_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def put(self, opportunity: RawOpportunity) -> None:
        if not opportunity.id:
            raise ValueError("Cannot cache an opportunity without an id")
        entry = CacheEntry(opportunity.copy(), self._clock())
        with self._lock:
            self._entries[opportunity.id] = entry

    def put_many(self, opportunities: list[RawOpportunity]) -> None:
        now = self._clock()
        entries = {o.id: CacheEntry(o.copy(), now) for o in opportunities if o.id}
        with self._lock:
            self._entries.update(entries)

    def get(self, opportunity_id: str) -> RawOpportunity | None:
        with self._lock:
            entry = self._entries.get(opportunity_id)
        return entry.opportunity.copy() if entry else None

    def __contains__(self, opportunity_id: str) -> bool:
        with self._lock:
            return opportunity_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep(self) -> int:
        """Drop entries older than the TTL. Returns how many were removed."""
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.inserted_at < cutoff]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)
        if expired:
            logger.info("Cache sweep removed %d expired entries (%d remain)", len(expired), remaining)
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ── Background sweeper ─────────────────────────────────────────────────

    def start_sweeper(self) -> None:
        if self._sweeper and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="opportunity-cache-sweeper", daemon=True)
        self._sweeper.start()
        logger.debug("Cache sweeper started (every %.0fs)", self.sweep_interval_seconds)

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
