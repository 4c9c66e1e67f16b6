"""Concurrent fan-out over all registered opportunity sources.

Every source runs on its own worker under an independent timeout. A source
that raises or does not answer in time contributes nothing and has its error
recorded; the aggregation itself always succeeds. The worker pool outlives
individual calls so a stuck source never blocks the caller on pool
shutdown.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from opportunity_engine.cache import OpportunityCache
from opportunity_engine.errors import SourceTimeoutError, UnknownSourceError
from opportunity_engine.models import DiscoveryPreferences, RawOpportunity, SourceStats
from opportunity_engine.sources.base import OpportunitySource

logger = logging.getLogger(__name__)


@dataclass
class SourceMetrics:
    """Running health of one source across requests."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    last_error: str | None = None
    last_error_at: str | None = None
    error_patterns: dict[str, int] = field(default_factory=dict)

    def record_success(self, elapsed: float) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        n = self.successful_requests
        self.average_response_time += (elapsed - self.average_response_time) / n

    def record_failure(self, error: str) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        self.last_error = error
        self.last_error_at = datetime.now(timezone.utc).isoformat()
        self.error_patterns[error] = self.error_patterns.get(error, 0) + 1


def minimal_preferences(skills: list[str] | None = None) -> DiscoveryPreferences:
    """Unconstrained preferences for direct source queries."""
    return DiscoveryPreferences(
        user_id="",
        skills=tuple(skills or ()),
        time_availability="any",
        risk_appetite="any",
        income_goal=0,
        work_preference="any",
    )


class SourceAggregator:
    def __init__(
        self,
        cache: OpportunityCache,
        timeout_seconds: float = 30.0,
        max_workers: int = 16,
    ):
        self.cache = cache
        self.timeout_seconds = timeout_seconds
        self._sources: dict[str, OpportunitySource] = {}
        self._metrics: dict[str, SourceMetrics] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="source")

    # ── Registration ───────────────────────────────────────────────────────

    def register_source(self, source: OpportunitySource) -> None:
        if "-" in source.id:
            logger.warning(
                "Source id %r contains '-'; lookups by id prefix will not find it", source.id
            )
        with self._lock:
            self._sources[source.id] = source
            self._metrics.setdefault(source.id, SourceMetrics())
        logger.info("Registered source: %s (%s)", source.id, type(source).__name__)

    def get_all_sources(self) -> list[OpportunitySource]:
        with self._lock:
            return list(self._sources.values())

    def get_source(self, source_id: str) -> OpportunitySource | None:
        with self._lock:
            return self._sources.get(source_id)

    def metrics(self) -> dict[str, SourceMetrics]:
        with self._lock:
            return {k: replace(v, error_patterns=dict(v.error_patterns)) for k, v in self._metrics.items()}

    # ── Fan-out ────────────────────────────────────────────────────────────

    def collect(self, preferences: DiscoveryPreferences) -> tuple[list[RawOpportunity], dict[str, SourceStats]]:
        """Query every source concurrently and merge the results."""
        sources = self.get_all_sources()
        skills = list(preferences.skills)
        logger.info("Collecting from %d sources (timeout %.0fs)", len(sources), self.timeout_seconds)

        started: dict[str, float] = {}
        futures: dict[Future, OpportunitySource] = {}
        for source in sources:
            started[source.id] = time.monotonic()
            futures[self._executor.submit(source.get_opportunities, skills, preferences)] = source

        done, pending = wait(futures, timeout=self.timeout_seconds)

        all_opportunities: list[RawOpportunity] = []
        stats: dict[str, SourceStats] = {}

        for future in done:
            source = futures[future]
            try:
                opportunities = future.result()
            except Exception as exc:
                stats[source.id] = self._failed(source.id, exc)
                continue
            elapsed = time.monotonic() - started[source.id]
            for opportunity in opportunities:
                opportunity.source = source.id
            all_opportunities.extend(opportunities)
            stats[source.id] = SourceStats(count=len(opportunities), elapsed_seconds=round(elapsed, 3))
            self._record_success(source.id, elapsed)
            logger.info("  -> %s: %d opportunities in %.2fs", source.id, len(opportunities), elapsed)

        for future in pending:
            source = futures[future]
            future.cancel()
            stats[source.id] = self._failed(source.id, SourceTimeoutError(source.id, self.timeout_seconds))

        self.cache.put_many(all_opportunities)
        self._log_stats(stats)
        return all_opportunities, stats

    def get_opportunities_from_source(
        self,
        source_id: str,
        limit: int = 10,
        skills: list[str] | None = None,
    ) -> list[RawOpportunity]:
        """Query one source directly with unconstrained preferences."""
        return self.query_source(source_id, minimal_preferences(skills))[:limit]

    def query_source(self, source_id: str, preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        """Run one source under the source timeout and cache what it returns.

        Raises UnknownSourceError, SourceTimeoutError or whatever the
        source raised; the failure is recorded in the source's metrics.
        """
        source = self.get_source(source_id)
        if source is None:
            raise UnknownSourceError(source_id)

        future = self._executor.submit(source.get_opportunities, list(preferences.skills), preferences)
        start = time.monotonic()
        try:
            opportunities = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            error = SourceTimeoutError(source_id, self.timeout_seconds)
            self._failed(source_id, error)
            raise error from exc
        except Exception as exc:
            self._failed(source_id, exc)
            raise

        self._record_success(source_id, time.monotonic() - start)
        for opportunity in opportunities:
            opportunity.source = source_id
        self.cache.put_many(opportunities)
        return opportunities

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ── Internal Helpers ───────────────────────────────────────────────────

    def _failed(self, source_id: str, exc: BaseException) -> SourceStats:
        message = str(exc) or type(exc).__name__
        logger.error("  -> %s: FAILED: %s", source_id, message)
        with self._lock:
            self._metrics.setdefault(source_id, SourceMetrics()).record_failure(message)
        return SourceStats(count=0, elapsed_seconds=-1, error=message)

    def _record_success(self, source_id: str, elapsed: float) -> None:
        with self._lock:
            self._metrics.setdefault(source_id, SourceMetrics()).record_success(elapsed)

    def _log_stats(self, stats: dict[str, SourceStats]) -> None:
        logger.info("=== Aggregation Summary ===")
        for source_id, stat in stats.items():
            if stat.error:
                logger.info("  %s: failed (%s)", source_id, stat.error)
            else:
                logger.info("  %s: %d opportunities", source_id, stat.count)
