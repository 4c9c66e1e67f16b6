"""Scoring strategies for filtered opportunities.

Two strategies share the same contract: a pure function of
(opportunity, preferences, history) returning a ``ScoreResult`` with a
score in [0, 1] and at most three explanation factors.

- **classic**: a fixed weighted blend of skill, income, time and risk fit
- **ml**: a ten-feature vector combined with configurable, normalized
  weights, plus an optional collaborative adjustment and ROI re-weighting

``ScoringEngine.score_all`` picks the strategy from the request flags. If
the ML path raises, the whole batch is re-scored classically so the output
shape never depends on which strategy ran.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import NamedTuple

from opportunity_engine.config import ClassicWeights, RoiWeights, ScoringConfig
from opportunity_engine.market_data import MarketDataService
from opportunity_engine.models import (
    DemandLevel,
    DiscoveryPreferences,
    MatchFactor,
    RawOpportunity,
    RiskLevel,
    UserHistory,
)

logger = logging.getLogger(__name__)

CLASSIC = "classic"
ML = "ml"

# Curated and AI-generated opportunities get a small quality bonus
QUALITY_SOURCES = frozenset({"supplementary", "anthropic"})

MAX_FACTORS = 3


class ScoreResult(NamedTuple):
    score: float
    factors: list[MatchFactor]
    strategy: str


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _top_factors(candidates: list[MatchFactor]) -> list[MatchFactor]:
    ranked = sorted(candidates, key=lambda f: f.value, reverse=True)
    return [MatchFactor(f.name, round(f.value, 3)) for f in ranked[:MAX_FACTORS]]


def _lower(skills) -> list[str]:
    return [s.strip().lower() for s in skills if s and s.strip()]


# ── Classic components ──────────────────────────────────────────────────────


def skill_match_score(skills: list[str], user_skills: list[str] | tuple[str, ...]) -> float:
    """(exact + 0.5 * partial matches) / number of skills.

    A user without skills scores 0.3; an opportunity listing no skills 0.5.
    """
    user = _lower(user_skills)
    wanted = _lower(skills)
    if not user:
        return 0.3
    if not wanted:
        return 0.5

    total = 0.0
    for skill in wanted:
        if skill in user:
            total += 1.0
        elif any(skill in u or u in skill for u in user):
            total += 0.5
    return total / len(wanted)


def income_fit_score(opportunity: RawOpportunity, income_goal: float) -> float:
    if income_goal <= 0:
        return 0.5
    ratio = opportunity.income.monthly_min / income_goal
    if ratio >= 2:
        return 1.0
    if ratio >= 1.5:
        return 0.95
    if ratio >= 1:
        return 0.9
    if ratio >= 0.75:
        return 0.8
    if ratio >= 0.5:
        return 0.6
    if ratio >= 0.25:
        return 0.4
    return 0.2


def time_fit_score(opportunity: RawOpportunity, available_hours: float) -> float:
    if available_hours <= 0:
        return 0.5
    ratio = opportunity.time_required.average / available_hours
    for limit, score in ((0.3, 0.95), (0.5, 0.9), (0.75, 0.8), (0.9, 0.7), (1.0, 0.6), (1.25, 0.4), (1.5, 0.2)):
        if ratio <= limit:
            return score
    return 0.1


def risk_fit_score(opportunity: RawOpportunity, user_level: RiskLevel | None) -> float:
    """Positive difference means the user tolerates more risk than required."""
    if user_level is None:
        return 0.8
    diff = user_level.rank - opportunity.entry_barrier.rank
    if diff == 0:
        return 1.0
    if diff == 1:
        return 0.8
    if diff >= 2:
        return 0.6
    if diff == -1:
        return 0.4
    return 0.2


class ClassicScorer:
    """Deterministic weighted blend."""

    def __init__(self, weights: ClassicWeights | None = None):
        self.weights = weights or ClassicWeights()

    def score(
        self,
        opportunity: RawOpportunity,
        preferences: DiscoveryPreferences,
        history: UserHistory | None = None,
    ) -> ScoreResult:
        w = self.weights
        required = skill_match_score(opportunity.required_skills, preferences.skills)
        if opportunity.nice_to_have_skills:
            nice = skill_match_score(opportunity.nice_to_have_skills, preferences.skills)
        else:
            nice = required
        skill = w.required_share * required + (1 - w.required_share) * nice

        income = income_fit_score(opportunity, preferences.income_goal)
        time_fit = time_fit_score(opportunity, preferences.available_hours)
        risk = risk_fit_score(opportunity, preferences.risk_level)
        quality = opportunity.source in QUALITY_SOURCES

        total = w.skill * skill + w.income * income + w.time * time_fit + w.risk * risk
        if quality:
            total += w.quality_bonus

        factors = [
            MatchFactor("Skill match", required),
            MatchFactor("Nice-to-have skills", nice),
            MatchFactor("Income potential", income),
            MatchFactor("Time fit", time_fit),
            MatchFactor("Risk match", risk),
        ]
        if quality:
            factors.append(MatchFactor("Quality source", 1.0))

        return ScoreResult(_clamp(total), _top_factors(factors), CLASSIC)


# ── Feature-vector (ML) strategy ────────────────────────────────────────────


@dataclass
class FeatureVector:
    skill_match: float
    time_match: float
    risk_match: float
    income_match: float
    content_completeness: float
    popularity: float
    novice_accessibility: float
    time_to_revenue: float
    market_demand: float
    diversity: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


FEATURE_LABELS = {
    "skill_match": "Skill match",
    "time_match": "Time fit",
    "risk_match": "Risk match",
    "income_match": "Income potential",
    "content_completeness": "Content completeness",
    "popularity": "Community popularity",
    "novice_accessibility": "Beginner friendly",
    "time_to_revenue": "Time to revenue",
    "market_demand": "Market demand",
    "diversity": "Category diversity",
}

_DEMAND_SCORES = {DemandLevel.HIGH: 0.9, DemandLevel.MEDIUM: 0.6, DemandLevel.LOW: 0.3}
_BARRIER_ACCESSIBILITY = {RiskLevel.LOW: 1.0, RiskLevel.MEDIUM: 0.6, RiskLevel.HIGH: 0.2}


def _jaccard_skill_match(opportunity: RawOpportunity, user_skills) -> float:
    user = set(_lower(user_skills))
    required = set(_lower(opportunity.required_skills))
    if not required:
        return 0.5
    if not user:
        return 0.25
    return len(required & user) / len(required | user)


def _time_match(opportunity: RawOpportunity, available_hours: float) -> float:
    if available_hours <= 0:
        return 0.5
    ratio = opportunity.time_required.average / available_hours
    for limit, score in ((0.3, 0.9), (0.6, 0.8), (0.9, 0.7), (1.0, 0.6), (1.5, 0.4)):
        if ratio <= limit:
            return score
    return 0.2


def _risk_match(opportunity: RawOpportunity, user_level: RiskLevel | None) -> float:
    if user_level is None:
        return 0.8
    diff = user_level.rank - opportunity.entry_barrier.rank
    if diff == 0:
        return 1.0
    if diff == 1:
        return 0.8
    if diff == -1:
        return 0.5
    if diff < -1:
        return 0.2
    return 0.6


def _income_match(opportunity: RawOpportunity, income_goal: float) -> float:
    if income_goal <= 0:
        return 0.5
    ratio = opportunity.income.monthly_average / income_goal
    for limit, score in ((2, 1.0), (1, 0.9), (0.7, 0.8), (0.5, 0.7), (0.3, 0.5)):
        if ratio >= limit:
            return score
    return 0.3


def _content_completeness(opportunity: RawOpportunity) -> float:
    checks = (
        len(opportunity.description) >= 50,
        len(opportunity.steps) >= 3,
        bool(opportunity.success_stories),
        bool(opportunity.resources),
        bool(opportunity.required_skills),
    )
    return sum(checks) / len(checks)


def _novice_accessibility(opportunity: RawOpportunity) -> float:
    barrier = _BARRIER_ACCESSIBILITY[opportunity.entry_barrier]
    cost = opportunity.startup_cost.average
    if cost <= 100:
        cost_score = 1.0
    elif cost <= 500:
        cost_score = 0.7
    else:
        cost_score = 0.4
    return (barrier + cost_score) / 2


def _revenue_speed(days: float) -> float:
    for limit, score in ((7, 1.0), (14, 0.85), (30, 0.7), (60, 0.5), (90, 0.35)):
        if days <= limit:
            return score
    return 0.2


def extract_features(
    opportunity: RawOpportunity,
    preferences: DiscoveryPreferences,
    market_data: MarketDataService,
    history: UserHistory | None = None,
) -> FeatureVector:
    low, high = market_data.estimate_revenue_window(opportunity, opportunity.skill_gap_days)

    if opportunity.market_demand is not None:
        demand = _DEMAND_SCORES[opportunity.market_demand]
    else:
        demand = market_data.calculate_market_demand_score(
            opportunity.platform, opportunity.category, opportunity.type
        )

    if history and history.total_saved:
        diversity = 1.0 - history.saved_share(opportunity.type)
    else:
        diversity = 0.5

    popularity = history.popularity.get(opportunity.id, 0.5) if history else 0.5

    return FeatureVector(
        skill_match=_jaccard_skill_match(opportunity, preferences.skills),
        time_match=_time_match(opportunity, preferences.available_hours),
        risk_match=_risk_match(opportunity, preferences.risk_level),
        income_match=_income_match(opportunity, preferences.income_goal),
        content_completeness=_content_completeness(opportunity),
        popularity=_clamp(popularity),
        novice_accessibility=_novice_accessibility(opportunity),
        time_to_revenue=_revenue_speed((low + high) / 2),
        market_demand=_clamp(demand),
        diversity=diversity,
    )


def collaborative_adjustment(opportunity: RawOpportunity, history: UserHistory | None) -> float:
    """Boost types the user saves, penalize items viewed repeatedly but never saved."""
    if not history:
        return 0.0
    adjustment = 0.1 * history.saved_share(opportunity.type)
    views = history.view_counts.get(opportunity.id, 0)
    if views > 1 and opportunity.id not in history.saved_ids:
        adjustment -= min(0.15, 0.05 * (views - 1))
    return adjustment


class MLScorer:
    """Weighted feature-vector strategy."""

    def __init__(self, config: ScoringConfig, market_data: MarketDataService):
        self.config = config
        self.market_data = market_data

    @staticmethod
    def _normalized(weights: dict[str, float]) -> dict[str, float]:
        unknown = set(weights) - set(FEATURE_LABELS)
        if unknown:
            raise ValueError(f"Unknown feature weights: {sorted(unknown)}")
        total = sum(weights.values())
        if total <= 0:
            raise ValueError("Feature weights must sum to a positive value")
        return {name: weight / total for name, weight in weights.items()}

    def score(
        self,
        opportunity: RawOpportunity,
        preferences: DiscoveryPreferences,
        history: UserHistory | None = None,
    ) -> ScoreResult:
        weights = self._normalized(self.config.ml_weights)
        features = extract_features(opportunity, preferences, self.market_data, history).as_dict()
        total = sum(weights.get(name, 0.0) * value for name, value in features.items())

        if self.config.collaborative:
            total += collaborative_adjustment(opportunity, history)

        if preferences.include_roi:
            roi = roi_score(opportunity, self.market_data, self.config.roi)
            blend = self.config.roi_blend
            total = (1 - blend) * total + blend * roi / 100

        factors = [MatchFactor(FEATURE_LABELS[name], value) for name, value in features.items()]
        return ScoreResult(_clamp(total), _top_factors(factors), ML)


# ── ROI ────────────────────────────────────────────────────────────────────


def roi_score(
    opportunity: RawOpportunity,
    market_data: MarketDataService,
    weights: RoiWeights | None = None,
) -> int:
    """Return on investment on a 0-100 scale."""
    weights = weights or RoiWeights()
    income_factor = min(1.0, opportunity.income.monthly_average / weights.income_max)

    cost = opportunity.startup_cost.average
    cost_factor = 1.0 if cost <= 0 else 1000 / (cost + 1000)

    low, high = market_data.estimate_revenue_window(opportunity, opportunity.skill_gap_days)
    time_factor = _clamp(1 - ((low + high) / 2) / 180)

    total = weights.income * income_factor + weights.cost * cost_factor + weights.time * time_factor
    return int(round(_clamp(total) * 100))


# ── Engine ─────────────────────────────────────────────────────────────────


class ScoringEngine:
    def __init__(self, config: ScoringConfig | None = None, market_data: MarketDataService | None = None):
        self.config = config or ScoringConfig()
        self.market_data = market_data or MarketDataService()
        self.classic = ClassicScorer(self.config.classic)
        self.ml = MLScorer(self.config, self.market_data)

    def score_opportunity(
        self,
        opportunity: RawOpportunity,
        preferences: DiscoveryPreferences,
        history: UserHistory | None = None,
    ) -> ScoreResult:
        if preferences.use_ml:
            try:
                return self.ml.score(opportunity, preferences, history)
            except Exception as exc:
                logger.warning("ML scoring failed for %s, using classic: %s", opportunity.id, exc)
        return self.classic.score(opportunity, preferences, history)

    def score_all(
        self,
        opportunities: list[RawOpportunity],
        preferences: DiscoveryPreferences,
        history: UserHistory | None = None,
    ) -> list[RawOpportunity]:
        """Annotate every opportunity and return them sorted by score."""
        results: list[ScoreResult] | None = None
        if preferences.use_ml:
            try:
                results = [self.ml.score(o, preferences, history) for o in opportunities]
            except Exception:
                logger.exception("ML scoring failed, re-scoring %d opportunities classically", len(opportunities))
        if results is None:
            results = [self.classic.score(o, preferences, history) for o in opportunities]

        for opportunity, result in zip(opportunities, results):
            opportunity.match_score = round(result.score, 4)
            opportunity.match_explanation = result.factors
            opportunity.roi_score = roi_score(opportunity, self.market_data, self.config.roi)
            opportunity.time_to_first_revenue = self.market_data.format_time_to_first_revenue(
                opportunity, opportunity.skill_gap_days
            )

        strategy = results[0].strategy if results else (ML if preferences.use_ml else CLASSIC)
        logger.info("Scored %d opportunities (%s)", len(opportunities), strategy)
        return sorted(opportunities, key=lambda o: o.match_score or 0.0, reverse=True)
