"""Abstract base class for all opportunity sources."""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any

import requests

from opportunity_engine.catalog import build_opportunity, load_section, make_opportunity_id, matches_keywords
from opportunity_engine.config import EngineConfig, SourceConfig
from opportunity_engine.models import DiscoveryPreferences, OpportunityType, RawOpportunity, RiskLevel

logger = logging.getLogger(__name__)


class OpportunitySource(ABC):
    """The plug-in surface the aggregator needs from a source."""

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @property
    def name(self) -> str:
        return self.id

    @abstractmethod
    def get_opportunities(self, skills: list[str], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        ...


class BaseSource(OpportunitySource):
    """Base class that the configured platform sources extend.

    Provides shared HTTP utilities (session management, rate limiting,
    retries) and the built-in catalog, so individual sources only need to
    implement ``fetch_api`` and ``catalog_section``.
    """

    catalog_section: str = ""
    default_type: OpportunityType = OpportunityType.FREELANCE

    def __init__(self, source_config: SourceConfig, engine_config: EngineConfig):
        self.source_config = source_config
        self.engine_config = engine_config
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": engine_config.user_agent})
        self._last_request_time: float = 0

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.source_config.name

    @property
    def platform(self) -> str:
        return self.source_config.params.get("platform", self.id.title())

    @property
    def api_key(self) -> str:
        env = self.source_config.api_key_env
        return os.environ.get(env, "") if env else ""

    @property
    def has_api_access(self) -> bool:
        if not self.source_config.url:
            return False
        if self.source_config.api_key_env and not self.api_key:
            return False
        return True

    def get_opportunities(self, skills: list[str], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        """Live listings when the API is reachable, the built-in catalog otherwise.

        A failing API falls back to the catalog; anything else propagates to
        the aggregator, which records it against this source.
        """
        if self.has_api_access:
            try:
                opportunities = self.fetch_api(skills, preferences)
                logger.info("[%s] Got %d opportunities from API", self.id, len(opportunities))
                if opportunities:
                    return opportunities
            except requests.RequestException as exc:
                logger.warning("[%s] API request failed, using catalog: %s", self.id, exc)

        opportunities = self.catalog_opportunities(skills)
        logger.info("[%s] Got %d opportunities from catalog", self.id, len(opportunities))
        return opportunities

    @abstractmethod
    def fetch_api(self, skills: list[str], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        """Fetch and transform live listings. Must be implemented by every subclass."""
        ...

    def catalog_opportunities(self, skills: list[str]) -> list[RawOpportunity]:
        entries = load_section(self.catalog_section) if self.catalog_section else []
        return [
            build_opportunity(entry, make_opportunity_id(self.id, entry["title"]), self.id,
                              platform=entry.get("platform") or self.platform)
            for entry in entries
            if matches_keywords(entry, skills)
        ]

    def create_opportunity(self, unique_key: str, **fields: Any) -> RawOpportunity:
        """Standardized opportunity with this source's id prefix and defaults."""
        fields.setdefault("title", "Untitled Opportunity")
        fields.setdefault("type", self.default_type.value)
        fields.setdefault("platform", self.platform)
        fields.setdefault("steps", ["Research the opportunity", "Create a plan", "Start implementation"])
        fields["id"] = make_opportunity_id(self.id, unique_key)
        fields["source"] = self.id
        return RawOpportunity.from_dict(fields)

    @staticmethod
    def categorize_risk(startup_cost: float, days_to_first_dollar: float, competition: str) -> RiskLevel:
        """Entry barrier from startup cost, raised for slow payback and crowded markets."""
        if startup_cost > 5000:
            risk = RiskLevel.HIGH
        elif startup_cost > 1000:
            risk = RiskLevel.MEDIUM
        else:
            risk = RiskLevel.LOW

        bumps = int(days_to_first_dollar > 90) + int(competition == "high")
        levels = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]
        return levels[min(2, levels.index(risk) + bumps)]

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, **kwargs) -> requests.Response:
        """Rate-limited GET request with retries."""
        self._rate_limit()
        kwargs.setdefault("timeout", self.engine_config.request_timeout_seconds)

        for attempt in range(1, 4):
            try:
                resp = self.session.get(url, **kwargs)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                logger.warning(
                    "[%s] GET %s attempt %d failed: %s", self.id, url, attempt, exc
                )
                if attempt == 3:
                    raise
                time.sleep(2 ** attempt)

        # Unreachable, but keeps type checkers happy
        raise RuntimeError("Retry loop exited unexpectedly")

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    def _rate_limit(self) -> None:
        """Enforce minimum delay between requests."""
        delay = self.engine_config.request_delay_seconds
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < delay:
            time.sleep(delay - elapsed)
        self._last_request_time = time.monotonic()
