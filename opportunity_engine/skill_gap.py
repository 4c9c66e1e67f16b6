"""Per-opportunity skill gap reports built on the skill graph."""

from __future__ import annotations

import logging

from opportunity_engine.config import RoiWeights
from opportunity_engine.market_data import MarketDataService
from opportunity_engine.models import RawOpportunity, SkillGapReport
from opportunity_engine.scoring import roi_score
from opportunity_engine.skill_graph import BoundedEstimator, SkillGraph

logger = logging.getLogger(__name__)


class SkillGapAnalyzer:
    def __init__(
        self,
        graph: SkillGraph,
        estimator: BoundedEstimator | None = None,
        market_data: MarketDataService | None = None,
        roi_weights: RoiWeights | None = None,
    ):
        self.graph = graph
        self.estimator = estimator or BoundedEstimator()
        self.market_data = market_data
        self.roi_weights = roi_weights or RoiWeights()

    def analyze(self, opportunity: RawOpportunity, user_skills: list[str]) -> SkillGapReport:
        result = self.graph.calculate_skill_gap_days(
            opportunity.required_skills,
            opportunity.nice_to_have_skills,
            list(user_skills),
            self.estimator,
        )

        resources = []
        confidences = []
        for item in result.breakdown:
            if item.node_id is None:
                continue
            node = self.graph.get(item.node_id)
            _, confidence = self.graph.estimate_learning_days(item.node_id)
            confidences.append(confidence)
            for resource in node.resources:
                resources.append({
                    "skill": node.name,
                    "title": resource.title,
                    "url": resource.url,
                    "estimated_hours": resource.estimated_hours,
                })

        if result.used_fallback:
            confidence = 0.3
        elif confidences:
            confidence = round(sum(confidences) / len(confidences), 2)
        else:
            confidence = 0.9  # nothing to learn

        return SkillGapReport(
            total_days=result.days,
            breakdown=result.breakdown,
            missing_required=result.missing_required,
            missing_nice_to_have=result.missing_nice_to_have,
            resources=resources,
            confidence=confidence,
            used_fallback=result.used_fallback,
        )

    def annotate(self, opportunities: list[RawOpportunity], user_skills: list[str]) -> int:
        """Attach gap reports in place. Returns how many were annotated.

        A failure on one opportunity leaves it unannotated and moves on.
        """
        annotated = 0
        for opportunity in opportunities:
            try:
                report = self.analyze(opportunity, user_skills)
            except Exception as exc:
                logger.error("Skill gap analysis failed for %s: %s", opportunity.id, exc)
                continue

            opportunity.skill_gap_analysis = report
            opportunity.skill_gap_days = report.total_days
            if self.market_data is not None:
                opportunity.time_to_first_revenue = self.market_data.format_time_to_first_revenue(
                    opportunity, report.total_days
                )
                opportunity.roi_score = roi_score(opportunity, self.market_data, self.roi_weights)
            annotated += 1

        logger.info("Skill gap analysis applied to %d/%d opportunities", annotated, len(opportunities))
        return annotated
