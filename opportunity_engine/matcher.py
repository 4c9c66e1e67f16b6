"""Deduplication and preference filters for the discovery pipeline.

1. Deduplicate: one entry per id, previously recommended ids dropped
2. Time filter: required hours within 125% of availability
3. Risk filter: entry barrier at most one tier above the user's appetite
4. Income filter: minimum monthly income at least 15% of the goal
5. Work preference: remote/local mismatch

The thresholds are lenient on purpose so the filters trim the candidate
pool rather than starve it. Every filter returns ``(passed, rejected)``.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import NamedTuple

from opportunity_engine.config import FilterConfig
from opportunity_engine.models import DiscoveryPreferences, RawOpportunity

logger = logging.getLogger(__name__)


class RejectionReason(Enum):
    """Why an opportunity was dropped before scoring."""

    DUPLICATE = "REJECTED_DUPLICATE"
    PREVIOUSLY_SEEN = "REJECTED_PREVIOUSLY_SEEN"
    TIME = "REJECTED_TIME"
    RISK = "REJECTED_RISK"
    INCOME = "REJECTED_INCOME"
    WORK_PREFERENCE = "REJECTED_WORK_PREFERENCE"


class FilterResult(NamedTuple):
    """Result of filtering a single opportunity."""

    opportunity: RawOpportunity
    passed: bool
    reason: RejectionReason | None = None


# ── Deduplication ───────────────────────────────────────────────────────────


def deduplicate(
    opportunities: list[RawOpportunity],
    previous_ids: set[str],
) -> tuple[list[RawOpportunity], list[FilterResult]]:
    """Keep the first opportunity per id and drop ids already recommended.

    Opportunities without an id get a generated one first.
    """
    seen: dict[str, RawOpportunity] = {}
    rejected: list[FilterResult] = []

    for opportunity in opportunities:
        if not opportunity.id:
            opportunity.id = f"generated-{uuid.uuid4()}"
        if opportunity.id in previous_ids:
            rejected.append(FilterResult(opportunity, False, RejectionReason.PREVIOUSLY_SEEN))
        elif opportunity.id in seen:
            rejected.append(FilterResult(opportunity, False, RejectionReason.DUPLICATE))
        else:
            seen[opportunity.id] = opportunity

    return list(seen.values()), rejected


# ── Preference Filters ─────────────────────────────────────────────────────


def apply_time_filter(
    opportunities: list[RawOpportunity],
    available_hours: float,
    tolerance: float = 1.25,
) -> tuple[list[RawOpportunity], list[FilterResult]]:
    """Drop opportunities needing more than ``tolerance`` x the available hours.

    Unknown availability (0) keeps everything.
    """
    if available_hours <= 0:
        return list(opportunities), []

    limit = available_hours * tolerance
    passed, rejected = [], []
    for opportunity in opportunities:
        if opportunity.time_required.min > limit:
            rejected.append(FilterResult(opportunity, False, RejectionReason.TIME))
        else:
            passed.append(opportunity)
    return passed, rejected


def apply_risk_filter(
    opportunities: list[RawOpportunity],
    preferences: DiscoveryPreferences,
    max_steps: int = 1,
) -> tuple[list[RawOpportunity], list[FilterResult]]:
    user_level = preferences.risk_level
    if user_level is None:
        return list(opportunities), []

    passed, rejected = [], []
    for opportunity in opportunities:
        if opportunity.entry_barrier.rank > user_level.rank + max_steps:
            rejected.append(FilterResult(opportunity, False, RejectionReason.RISK))
        else:
            passed.append(opportunity)
    return passed, rejected


def apply_income_filter(
    opportunities: list[RawOpportunity],
    income_goal: float,
    floor_ratio: float = 0.15,
) -> tuple[list[RawOpportunity], list[FilterResult]]:
    if income_goal <= 0:
        return list(opportunities), []

    floor = income_goal * floor_ratio
    passed, rejected = [], []
    for opportunity in opportunities:
        if opportunity.income.monthly_min < floor:
            rejected.append(FilterResult(opportunity, False, RejectionReason.INCOME))
        else:
            passed.append(opportunity)
    return passed, rejected


def work_preference_matches(location: str, preference: str) -> bool:
    """Remote-only users skip local work and vice versa."""
    preference = (preference or "any").lower()
    location = (location or "").lower()
    if preference in ("any", "both") or location in ("", "both", "any"):
        return True
    return location == preference


def apply_work_preference_filter(
    opportunities: list[RawOpportunity],
    work_preference: str,
) -> tuple[list[RawOpportunity], list[FilterResult]]:
    passed, rejected = [], []
    for opportunity in opportunities:
        if work_preference_matches(opportunity.location, work_preference):
            passed.append(opportunity)
        else:
            rejected.append(FilterResult(opportunity, False, RejectionReason.WORK_PREFERENCE))
    return passed, rejected


def preference_filters(
    opportunities: list[RawOpportunity],
    preferences: DiscoveryPreferences,
    config: FilterConfig | None = None,
) -> tuple[list[RawOpportunity], list[FilterResult]]:
    """Apply all preference filters in order: time, risk, income, work preference."""
    config = config or FilterConfig()
    all_rejected: list[FilterResult] = []

    passed, rejected = apply_time_filter(opportunities, preferences.available_hours, config.time_tolerance)
    all_rejected.extend(rejected)
    logger.info("Time filter: %d passed, %d rejected", len(passed), len(rejected))

    passed, rejected = apply_risk_filter(passed, preferences, config.risk_steps)
    all_rejected.extend(rejected)
    logger.info("Risk filter: %d passed, %d rejected", len(passed), len(rejected))

    passed, rejected = apply_income_filter(passed, preferences.income_goal, config.income_floor_ratio)
    all_rejected.extend(rejected)
    logger.info("Income filter: %d passed, %d rejected", len(passed), len(rejected))

    passed, rejected = apply_work_preference_filter(passed, preferences.work_preference)
    all_rejected.extend(rejected)
    logger.info("Work preference filter: %d passed, %d rejected", len(passed), len(rejected))

    return passed, all_rejected


def get_rejection_summary(rejected: list[FilterResult]) -> dict[str, int]:
    """Count rejections by reason."""
    summary: dict[str, int] = {}
    for result in rejected:
        if result.reason:
            key = result.reason.value
            summary[key] = summary.get(key, 0) + 1
    return summary
