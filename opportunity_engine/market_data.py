"""Market reference data: earnings ranges, time to first revenue, demand.

The tables below are a static snapshot of public platform data. They can be
replaced at runtime from a YAML file (``refresh``) without restarting the
pipeline; readers always see either the old or the new snapshot.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

import yaml

from opportunity_engine.models import (
    DemandLevel,
    IncomeRange,
    IncomeTimeframe,
    OpportunityType,
    RawOpportunity,
    RiskLevel,
)

logger = logging.getLogger(__name__)


class EarningsRecord(NamedTuple):
    platform: str
    category: str
    skill_level: str
    low: float
    high: float
    median_hourly: float  # 0 for product/course style income
    time_to_first_sale: int  # days


@dataclass(frozen=True)
class PlatformGrowth:
    growth_rate: float  # percent per year
    user_count: int
    competitor_count: int


GENERAL = "general"

BASE_EARNINGS: list[EarningsRecord] = [
    EarningsRecord("Upwork", "web_development", "intermediate", 25, 75, 45, 14),
    EarningsRecord("Upwork", "content_writing", "intermediate", 20, 60, 35, 10),
    EarningsRecord("Fiverr", "content_writing", "beginner", 15, 50, 25, 7),
    EarningsRecord("Fiverr", "graphic_design", "intermediate", 25, 85, 45, 9),
    EarningsRecord("Teachable", "education", "expert", 500, 5000, 0, 45),
    EarningsRecord("Teachable", "fitness", "intermediate", 400, 3500, 0, 40),
    EarningsRecord("Gumroad", "digital_products", "intermediate", 300, 3000, 0, 30),
    EarningsRecord("Gumroad", "design", "intermediate", 350, 3200, 0, 28),
    EarningsRecord("Substack", "writing", "intermediate", 100, 2500, 0, 60),
    EarningsRecord("Substack", "newsletter", "intermediate", 150, 3000, 0, 75),
    EarningsRecord("Freelance", "acting", "intermediate", 200, 1500, 0, 30),
    EarningsRecord("Freelance", "voice_acting", "intermediate", 150, 1000, 0, 21),
    EarningsRecord("Freelance", "teaching", "intermediate", 25, 50, 35, 14),
    EarningsRecord("Podia", "cooking", "intermediate", 250, 2500, 0, 35),
    EarningsRecord("Podia", "dance", "intermediate", 200, 2000, 0, 28),
    # Per-type fallbacks, keyed by the opportunity type in the platform column
    EarningsRecord("FREELANCE", GENERAL, "intermediate", 20, 80, 40, 14),
    EarningsRecord("SERVICE", GENERAL, "intermediate", 25, 100, 45, 21),
    EarningsRecord("DIGITAL_PRODUCT", GENERAL, "intermediate", 300, 3000, 0, 45),
    EarningsRecord("CONTENT", GENERAL, "intermediate", 200, 2000, 0, 30),
    EarningsRecord("PASSIVE", GENERAL, "intermediate", 100, 5000, 0, 90),
    EarningsRecord("INFO_PRODUCT", GENERAL, "intermediate", 400, 4000, 0, 60),
]

BASE_PLATFORMS: dict[str, PlatformGrowth] = {
    "upwork": PlatformGrowth(15.3, 12_000_000, 5_000_000),
    "fiverr": PlatformGrowth(18.7, 8_000_000, 3_500_000),
    "gumroad": PlatformGrowth(22.1, 1_500_000, 800_000),
    "teachable": PlatformGrowth(17.5, 100_000, 40_000),
    "podia": PlatformGrowth(25.0, 50_000, 20_000),
    "substack": PlatformGrowth(28.2, 1_000_000, 300_000),
}

TYPE_GROWTH: dict[OpportunityType, float] = {
    OpportunityType.FREELANCE: 12.5,
    OpportunityType.SERVICE: 14.2,
    OpportunityType.DIGITAL_PRODUCT: 22.7,
    OpportunityType.CONTENT: 18.5,
    OpportunityType.PASSIVE: 16.3,
    OpportunityType.INFO_PRODUCT: 20.1,
}

_HOURLY_CATEGORIES = ("freelance", "consulting", "teaching", "tutoring", "coaching")
_MONTHLY_CATEGORIES = ("passive", "digital_product", "subscription", "saas")
_PROJECT_CATEGORIES = ("service", "development", "design")

_TYPE_TIMEFRAMES = {
    OpportunityType.FREELANCE: IncomeTimeframe.HOUR,
    OpportunityType.SERVICE: IncomeTimeframe.PROJECT,
}

DEFAULT_TIME_TO_FIRST_REVENUE = 30


class MarketDataService:
    """Lookup service over the earnings and platform growth tables."""

    def __init__(
        self,
        earnings: list[EarningsRecord] | None = None,
        platforms: dict[str, PlatformGrowth] | None = None,
    ):
        self._lock = threading.Lock()
        self._earnings = list(earnings if earnings is not None else BASE_EARNINGS)
        self._platforms = dict(platforms if platforms is not None else BASE_PLATFORMS)
        self.last_updated = datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Earnings
    # ------------------------------------------------------------------

    def get_earnings_data(
        self,
        category: str,
        platform: str | None = None,
        skill_level: str | None = None,
    ) -> list[EarningsRecord]:
        """Rows for a category, narrowed by platform and skill level when possible.

        Category matching is exact first, then partial in either direction.
        An unknown category yields no rows. Platform and skill level only
        narrow the result when they match something.
        """
        with self._lock:
            rows = [r for r in self._earnings if r.category != GENERAL]

        if category and category.lower() != GENERAL:
            wanted = category.lower()
            matches = [r for r in rows if r.category.lower() == wanted]
            if not matches:
                matches = [
                    r for r in rows
                    if r.category.lower() in wanted or wanted in r.category.lower()
                ]
            rows = matches

        if platform:
            by_platform = [r for r in rows if r.platform.lower() == platform.lower()]
            if by_platform:
                rows = by_platform

        if skill_level:
            by_level = [r for r in rows if r.skill_level.lower() == skill_level.lower()]
            if by_level:
                rows = by_level

        return rows

    def get_type_record(self, opportunity_type: OpportunityType) -> EarningsRecord | None:
        with self._lock:
            for record in self._earnings:
                if record.category == GENERAL and record.platform == opportunity_type.value:
                    return record
        return None

    def calculate_income_range(
        self,
        category: str,
        platform: str | None = None,
        skill_level: str = "intermediate",
        hours_per_week: float = 20,
        opportunity_type: OpportunityType | None = None,
    ) -> IncomeRange:
        """Estimate an income range for a category.

        Hourly rows are turned into a monthly figure using the weekly time
        commitment. Falls back to the category average, then the type's
        general row, then 100-1000 per month.
        """
        rows = self.get_earnings_data(category, platform, skill_level) if category else []
        if rows:
            row = rows[0]
            if row.median_hourly > 0:
                return IncomeRange(
                    min=round(row.low * hours_per_week * 4),
                    max=round(row.high * hours_per_week * 4),
                    timeframe=IncomeTimeframe.MONTH,
                )
            return IncomeRange(row.low, row.high, self.determine_timeframe(category))

        if opportunity_type is not None:
            record = self.get_type_record(opportunity_type)
            if record:
                timeframe = _TYPE_TIMEFRAMES.get(opportunity_type, IncomeTimeframe.MONTH)
                return IncomeRange(record.low, record.high, timeframe)

        return IncomeRange(100, 1000, IncomeTimeframe.MONTH)

    @staticmethod
    def determine_timeframe(category: str) -> IncomeTimeframe:
        """Natural income timeframe for a category name."""
        if not category:
            return IncomeTimeframe.MONTH
        lowered = category.lower()
        if any(c in lowered for c in _HOURLY_CATEGORIES):
            return IncomeTimeframe.HOUR
        if any(c in lowered for c in _MONTHLY_CATEGORIES):
            return IncomeTimeframe.MONTH
        if any(c in lowered for c in _PROJECT_CATEGORIES):
            return IncomeTimeframe.PROJECT
        opportunity_type = OpportunityType.parse(category)
        if opportunity_type is not None:
            return _TYPE_TIMEFRAMES.get(opportunity_type, IncomeTimeframe.MONTH)
        return IncomeTimeframe.MONTH

    # ------------------------------------------------------------------
    # Time to first revenue
    # ------------------------------------------------------------------

    def get_time_to_first_revenue(
        self,
        category: str,
        platform: str | None = None,
        opportunity_type: OpportunityType | None = None,
    ) -> int:
        """Average days until the first sale for a category (30 when unknown)."""
        rows = self.get_earnings_data(category, platform) if category else []
        if rows:
            return round(sum(r.time_to_first_sale for r in rows) / len(rows))
        if opportunity_type is not None:
            record = self.get_type_record(opportunity_type)
            if record:
                return record.time_to_first_sale
        return DEFAULT_TIME_TO_FIRST_REVENUE

    def estimate_revenue_window(
        self,
        opportunity: RawOpportunity,
        skill_gap_days: int | None = None,
    ) -> tuple[int, int]:
        """Days until first revenue as a (min, max) window.

        A harder entry barrier pushes the early end out, a large skill gap
        pushes the late end out.
        """
        base = self.get_time_to_first_revenue(
            opportunity.category, opportunity.platform or None, opportunity.type
        )
        low = math.ceil(base * 0.7)
        high = math.ceil(base * 1.3)

        if opportunity.entry_barrier == RiskLevel.HIGH:
            low = math.ceil(low * 1.5)
        elif opportunity.entry_barrier == RiskLevel.MEDIUM:
            low = math.ceil(low * 1.25)

        if skill_gap_days is not None:
            if skill_gap_days > 30:
                high = math.ceil(high * 1.5)
            elif skill_gap_days > 14:
                high = math.ceil(high * 1.25)

        return low, max(low, high)

    def format_time_to_first_revenue(
        self,
        opportunity: RawOpportunity,
        skill_gap_days: int | None = None,
    ) -> str:
        low, high = self.estimate_revenue_window(opportunity, skill_gap_days)
        if high < 14:
            return f"{low}-{high} days"
        if high < 30:
            return f"{math.ceil(low / 7)}-{math.ceil(high / 7)} weeks"
        return f"{math.ceil(low / 30)}-{math.ceil(high / 30)} months"

    # ------------------------------------------------------------------
    # Demand
    # ------------------------------------------------------------------

    def get_platform_growth_rate(self, platform: str) -> float:
        with self._lock:
            data = self._platforms.get(platform.lower())
        return data.growth_rate if data else 10.0

    def calculate_market_demand_score(
        self,
        platform: str = "",
        category: str = "",
        opportunity_type: OpportunityType | None = None,
    ) -> float:
        """Demand score in [0, 1] from platform growth and competition.

        Unknown platforms are resolved through the category's platform,
        then the opportunity type's growth rate; 0.5 otherwise.
        """
        with self._lock:
            platforms = dict(self._platforms)

        data = platforms.get(platform.lower()) if platform else None
        if data is None and category:
            related = self.get_earnings_data(category)
            if related:
                data = platforms.get(related[0].platform.lower())
        if data is None and opportunity_type in TYPE_GROWTH:
            data = PlatformGrowth(TYPE_GROWTH[opportunity_type], 1_000_000, 500_000)
        if data is None:
            return 0.5
        return self._demand_score(data)

    @staticmethod
    def _demand_score(data: PlatformGrowth) -> float:
        growth_score = min(1.0, data.growth_rate / 30)
        ratio = data.user_count / max(1, data.competitor_count)
        competition_score = min(1.0, ratio / 5)
        return growth_score * 0.6 + competition_score * 0.4

    @staticmethod
    def demand_level(score: float) -> DemandLevel:
        if score >= 0.7:
            return DemandLevel.HIGH
        if score >= 0.45:
            return DemandLevel.MEDIUM
        return DemandLevel.LOW

    # ------------------------------------------------------------------
    # Backfill & refresh
    # ------------------------------------------------------------------

    def backfill(self, opportunity: RawOpportunity) -> RawOpportunity:
        """Fill in a missing income range and market demand in place."""
        if opportunity.income.is_empty:
            hours = opportunity.time_required.average or 20
            opportunity.income = self.calculate_income_range(
                opportunity.category,
                opportunity.platform or None,
                hours_per_week=hours,
                opportunity_type=opportunity.type,
            )
            logger.debug("Backfilled income for %s: %s", opportunity.id, opportunity.income)

        if opportunity.market_demand is None:
            score = self.calculate_market_demand_score(
                opportunity.platform, opportunity.category, opportunity.type
            )
            opportunity.market_demand = self.demand_level(score)

        return opportunity

    def refresh(self, path: Path | str) -> bool:
        """Replace the reference tables from a YAML snapshot.

        The file holds ``earnings`` (list of rows) and ``platforms``
        (name -> growth_rate/user_count/competitor_count). Returns False and
        keeps the current tables when the file is missing or invalid.
        """
        snapshot_path = Path(path)
        if not snapshot_path.exists():
            logger.warning("Market data snapshot not found at %s", snapshot_path)
            return False

        try:
            with open(snapshot_path, "r") as f:
                raw = yaml.safe_load(f) or {}
            earnings = [EarningsRecord(**row) for row in raw.get("earnings", [])]
            platforms = {
                name.lower(): PlatformGrowth(**values)
                for name, values in (raw.get("platforms") or {}).items()
            }
        except (yaml.YAMLError, TypeError, OSError) as exc:
            logger.error("Invalid market data snapshot %s: %s", snapshot_path, exc)
            return False

        with self._lock:
            if earnings:
                self._earnings = earnings
            if platforms:
                self._platforms = platforms
            self.last_updated = datetime.now(timezone.utc)

        logger.info(
            "Refreshed market data from %s (%d earnings rows, %d platforms)",
            snapshot_path, len(earnings), len(platforms),
        )
        return True
