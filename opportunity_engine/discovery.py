"""Discovery orchestrator: runs the full recommendation pipeline.

This is the core pipeline:
  1. Fan out to every registered source (plus AI-generated and curated
     opportunities), each isolated behind its own timeout
  2. Deduplicate and drop anything already recommended to the user
  3. Filter against the user's time, risk, income and work preferences
  4. Score (classic or feature-vector) and sort
  5. Skill gap analysis for the top candidates
  6. Optional AI re-rank of the top few
  7. Enforce category diversity
  8. Persist the response

Only a missing user aborts a request. Every other stage degrades: a failed
source contributes nothing, failed ML scoring falls back to classic,
failed AI calls leave the results untouched, and a failed save is logged.
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from enum import Enum

from opportunity_engine.aggregator import SourceAggregator
from opportunity_engine.ai import AI_SOURCE_ID, AIEnhancementService
from opportunity_engine.cache import OpportunityCache
from opportunity_engine.catalog import listing_key
from opportunity_engine.config import EngineConfig
from opportunity_engine.diversity import enforce_diversity
from opportunity_engine.errors import UserNotFoundError
from opportunity_engine.market_data import MarketDataService
from opportunity_engine.matcher import deduplicate, get_rejection_summary, preference_filters
from opportunity_engine.models import (
    CostRange,
    DiscoveryPreferences,
    DiscoveryResults,
    IncomeRange,
    IncomeTimeframe,
    OpportunityType,
    RawOpportunity,
    Resource,
    RiskLevel,
    SimilarUser,
    SourceStats,
    TimeRange,
    UserHistory,
    UserProfile,
)
from opportunity_engine.prompts import PromptTemplateService
from opportunity_engine.scoring import ScoringEngine
from opportunity_engine.skill_gap import SkillGapAnalyzer
from opportunity_engine.skill_graph import BoundedEstimator, SkillGraph, default_nodes
from opportunity_engine.sources import SOURCE_REGISTRY
from opportunity_engine.sources.base import OpportunitySource
from opportunity_engine.storage import DiscoveryStore
from opportunity_engine.supplementary import SUPPLEMENTARY_SOURCE_ID, SupplementaryGenerator

logger = logging.getLogger(__name__)

# AI generation at or above this count replaces the curated supplements
AI_SUFFICIENT = 3

# Preferences used when re-querying a source to find one opportunity
LOOKUP_PREFERENCES = DiscoveryPreferences(
    user_id="",
    skills=("general",),
    time_availability="10-20",
    risk_appetite="medium",
    income_goal=1000,
)

# Keyword -> type for synthesized placeholders, first match wins
_SYNTHETIC_TYPES = [
    (("freelance", "consult"), OpportunityType.FREELANCE),
    (("product", "download", "app"), OpportunityType.DIGITAL_PRODUCT),
    (("content", "write", "blog"), OpportunityType.CONTENT),
    (("service", "coach"), OpportunityType.SERVICE),
    (("passive", "royalty"), OpportunityType.PASSIVE),
    (("course", "teach"), OpportunityType.INFO_PRODUCT),
]


class PipelineStage(Enum):
    INIT = "init"
    SOURCE_FAN_OUT = "source_fan_out"
    DEDUPLICATE = "deduplicate"
    PREFERENCE_FILTER = "preference_filter"
    SCORE = "score"
    SKILL_GAP_ENRICH = "skill_gap_enrich"
    AI_ENHANCE = "ai_enhance"
    DIVERSITY_ENFORCE = "diversity_enforce"
    PERSIST = "persist"
    RESPOND = "respond"


def synthetic_type(keyword: str) -> OpportunityType:
    keyword = keyword.lower()
    for needles, opportunity_type in _SYNTHETIC_TYPES:
        if any(n in keyword for n in needles):
            return opportunity_type
    return OpportunityType.FREELANCE


def synthesize_opportunity(opportunity_id: str) -> RawOpportunity | None:
    """Placeholder built from the id fragments, or None for a one-part id."""
    parts = listing_key(opportunity_id).split("-")
    if len(parts) < 2:
        return None

    source_id = parts[0]
    keyword = "-".join(parts[1:])
    words = keyword.replace("-", " ").replace("_", " ").strip()
    title = words[:1].upper() + words[1:]

    return RawOpportunity(
        id=opportunity_id,
        source=source_id,
        title=f"{title} Opportunity",
        description=(
            f"This {words} opportunity from {source_id} lets you earn income with your skills. "
            "Full details could not be loaded; explore similar opportunities in this category."
        ),
        type=synthetic_type(keyword),
        required_skills=[parts[1].replace("_", " "), "communication"],
        income=IncomeRange(500, 3000, IncomeTimeframe.MONTH),
        startup_cost=CostRange(0, 200),
        time_required=TimeRange(10, 30),
        entry_barrier=RiskLevel.MEDIUM,
        steps=[
            f"Research {words} opportunities on {source_id}",
            "Create a professional profile",
            "Start applying or creating content",
            "Build your reputation through quality work",
        ],
        resources=[
            Resource("Getting started", f"https://{source_id}.com/get-started"),
            Resource("Resources", f"https://{source_id}.com/resources"),
        ],
        platform=source_id,
        url=f"https://{source_id}.com/{keyword}",
        match_score=0.6,
        synthesized=True,
    )


class DiscoveryOrchestrator:
    """Sequences the discovery pipeline over injected collaborators."""

    def __init__(
        self,
        config: EngineConfig,
        aggregator: SourceAggregator,
        store: DiscoveryStore,
        market_data: MarketDataService,
        scoring: ScoringEngine,
        skill_gap: SkillGapAnalyzer,
        ai: AIEnhancementService,
        supplementary: SupplementaryGenerator,
    ):
        self.config = config
        self.aggregator = aggregator
        self.cache = aggregator.cache
        self.store = store
        self.market_data = market_data
        self.scoring = scoring
        self.skill_gap = skill_gap
        self.ai = ai
        self.supplementary = supplementary
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="ai")

        self.store.init_store()

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        store: DiscoveryStore | None = None,
        ai: AIEnhancementService | None = None,
    ) -> "DiscoveryOrchestrator":
        """Build every service once and register the enabled sources."""
        cache = OpportunityCache(
            ttl_seconds=config.cache_ttl_minutes * 60,
            sweep_interval_seconds=config.cache_sweep_minutes * 60,
        )
        aggregator = SourceAggregator(cache, timeout_seconds=config.source_timeout_seconds)

        for source_config in config.enabled_sources:
            source_cls = SOURCE_REGISTRY.get(source_config.source_type)
            if not source_cls:
                logger.warning(
                    "Unknown source type '%s' for source '%s', skipping",
                    source_config.source_type,
                    source_config.name,
                )
                continue
            try:
                aggregator.register_source(source_cls(source_config, config))
            except Exception as exc:
                logger.error("Failed to initialize source '%s': %s", source_config.name, exc)

        market_data = MarketDataService()
        graph = SkillGraph(default_nodes())
        prompts = PromptTemplateService()

        return cls(
            config=config,
            aggregator=aggregator,
            store=store or DiscoveryStore(config.data_dir),
            market_data=market_data,
            scoring=ScoringEngine(config.scoring, market_data),
            skill_gap=SkillGapAnalyzer(
                graph, BoundedEstimator(config.estimator_seed), market_data, config.scoring.roi
            ),
            ai=ai or AIEnhancementService.from_config(config.ai, prompts),
            supplementary=SupplementaryGenerator(),
        )

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the cache sweeper and load the market data snapshot, if any."""
        if self.config.market_data_path:
            self.market_data.refresh(self.config.market_data_path)
        self.cache.start_sweeper()

    def shutdown(self) -> None:
        self.cache.stop_sweeper()
        self.aggregator.shutdown()
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ── Source access ──────────────────────────────────────────────────────

    def register_source(self, source: OpportunitySource) -> None:
        self.aggregator.register_source(source)

    def get_all_sources(self) -> list[OpportunitySource]:
        return self.aggregator.get_all_sources()

    def get_opportunities_from_source(
        self,
        source_id: str,
        limit: int = 10,
        skills: list[str] | None = None,
    ) -> list[RawOpportunity]:
        return self.aggregator.get_opportunities_from_source(source_id, limit, skills)

    # ── Pipeline ───────────────────────────────────────────────────────────

    def discover(self, user_id: str, preferences: DiscoveryPreferences) -> DiscoveryResults:
        """Run the full pipeline for one user. Raises UserNotFoundError."""
        started = time.monotonic()
        request_id = str(uuid.uuid4())
        tag = request_id[:8]

        self._stage(tag, PipelineStage.INIT)
        user = self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not preferences.skills and user.skills:
            preferences = replace(preferences, skills=tuple(user.skills))
        enhanced = preferences.use_enhanced and self.ai.available

        self._stage(tag, PipelineStage.SOURCE_FAN_OUT)
        candidates, source_stats = self._fan_out(preferences, enhanced)

        self._stage(tag, PipelineStage.DEDUPLICATE)
        previous_ids = self._previous_ids(user_id)
        unique, duplicates = deduplicate(candidates, previous_ids)
        for opportunity in unique:
            self.market_data.backfill(opportunity)
        logger.info("[%s] %d candidates, %d unique", tag, len(candidates), len(unique))

        self._stage(tag, PipelineStage.PREFERENCE_FILTER)
        passed, rejected = preference_filters(unique, preferences, self.config.filters)
        summary = get_rejection_summary(duplicates + rejected)
        if summary:
            logger.info("[%s] Rejections: %s", tag, summary)

        self._stage(tag, PipelineStage.SCORE)
        history = self._user_history(user_id) if preferences.use_ml else None
        scored = self.scoring.score_all(passed, preferences, history)

        if preferences.use_skill_gap_analysis and scored:
            self._stage(tag, PipelineStage.SKILL_GAP_ENRICH)
            self.skill_gap.annotate(scored[: self.config.skill_gap_top_n], list(preferences.skills))

        if enhanced and scored:
            self._stage(tag, PipelineStage.AI_ENHANCE)
            top_n = self.config.rerank_top_n
            scored = self.ai.rerank(scored[:top_n], preferences) + scored[top_n:]

        self._stage(tag, PipelineStage.DIVERSITY_ENFORCE)
        final = enforce_diversity(scored, self.config.diversity)
        self.cache.put_many(final)

        self._stage(tag, PipelineStage.PERSIST)
        try:
            self.store.save_discovery_result(user_id, final, preferences, request_id)
        except Exception:
            logger.exception("[%s] Failed to persist discovery results for %s", tag, user_id)

        similar_users: list[SimilarUser] = []
        if preferences.discoverable:
            try:
                similar_users = self.find_similar_users(user_id, list(preferences.skills))
            except Exception:
                logger.exception("[%s] Similar user lookup failed", tag)

        self._stage(tag, PipelineStage.RESPOND)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("[%s] Discovery complete: %d opportunities in %dms", tag, len(final), elapsed_ms)

        return DiscoveryResults(
            request_id=request_id,
            user_id=user_id,
            opportunities=final,
            similar_users=similar_users,
            enhanced=enhanced,
            ml_enabled=preferences.use_ml,
            skill_gap_analysis_enabled=preferences.use_skill_gap_analysis,
            include_roi=preferences.include_roi,
            discoverable=preferences.discoverable,
            source_stats=source_stats,
            user_info={"user_id": user.user_id, "username": user.username, "skills": list(preferences.skills)},
            processing_time_ms=elapsed_ms,
        )

    def _fan_out(
        self, preferences: DiscoveryPreferences, enhanced: bool
    ) -> tuple[list[RawOpportunity], dict[str, SourceStats]]:
        ai_future = self._executor.submit(self.ai.generate, preferences) if enhanced else None
        ai_started = time.monotonic()

        candidates, stats = self.aggregator.collect(preferences)

        generated: list[RawOpportunity] = []
        if ai_future is not None:
            try:
                generated = ai_future.result(timeout=self.config.ai.timeout_seconds)
                stats[AI_SOURCE_ID] = SourceStats(len(generated), round(time.monotonic() - ai_started, 3))
            except Exception as exc:
                ai_future.cancel()
                logger.error("AI generation failed: %s", exc)
                stats[AI_SOURCE_ID] = SourceStats(0, -1, str(exc) or type(exc).__name__)

        supplements: list[RawOpportunity] = []
        if len(generated) < AI_SUFFICIENT:
            try:
                supplements = self.supplementary.generate(preferences)
                stats[SUPPLEMENTARY_SOURCE_ID] = SourceStats(len(supplements), 0.0)
            except Exception as exc:
                logger.error("Supplementary generation failed: %s", exc)
                stats[SUPPLEMENTARY_SOURCE_ID] = SourceStats(0, -1, str(exc) or type(exc).__name__)

        extra = generated + supplements
        self.cache.put_many(extra)
        return candidates + extra, stats

    def _previous_ids(self, user_id: str) -> set[str]:
        try:
            return self.store.load_previous_opportunity_ids(user_id)
        except Exception as exc:
            logger.error("Could not load previous recommendations for %s: %s", user_id, exc)
            return set()

    def _user_history(self, user_id: str) -> UserHistory:
        try:
            return self.store.load_user_history(user_id)
        except Exception as exc:
            logger.error("Could not load interaction history for %s: %s", user_id, exc)
            return UserHistory()

    @staticmethod
    def _stage(tag: str, stage: PipelineStage) -> None:
        logger.debug("[%s] Stage: %s", tag, stage.value)

    # ── Similar users ──────────────────────────────────────────────────────

    def find_similar_users(self, user_id: str, skills: list[str]) -> list[SimilarUser]:
        """Discoverable users sharing skills, most similar first."""
        mine = {s.strip().lower() for s in skills if s.strip()}
        if not mine:
            return []

        others = [
            u for u in self.store.list_users(discoverable_only=True)
            if u.user_id != user_id
        ][: self.config.similar_users_scan]
        my_saved = self.store.saved_opportunity_ids(user_id)

        matches = [m for m in (self._similarity(o, mine, my_saved) for o in others) if m is not None]

        matches.sort(key=lambda m: (m.similarity, m.shared_opportunities), reverse=True)
        return matches[: self.config.similar_users_limit]

    def _similarity(self, other: UserProfile, mine: set[str], my_saved: set[str]) -> SimilarUser | None:
        theirs = {s.strip().lower() for s in other.skills if s.strip()}
        common = mine & theirs
        if not common:
            return None
        shared = my_saved & self.store.saved_opportunity_ids(other.user_id)
        return SimilarUser(
            user_id=other.user_id,
            username=other.username,
            skills=list(other.skills),
            similarity=round(len(common) / max(len(mine), len(theirs)), 3),
            shared_opportunities=len(shared),
            common_skills=sorted(common),
        )

    # ── Lookup ─────────────────────────────────────────────────────────────

    def get_opportunity_by_id(self, opportunity_id: str) -> RawOpportunity | None:
        """Cache, then persisted results, then the owning source, then a placeholder."""
        cached = self.cache.get(opportunity_id)
        if cached is not None:
            logger.debug("Found %s in cache", opportunity_id)
            return cached

        try:
            persisted = self.store.find_opportunity(opportunity_id)
        except Exception as exc:
            logger.error("Error searching stored results for %s: %s", opportunity_id, exc)
            persisted = None
        if persisted is not None:
            logger.info("Found %s in stored results", opportunity_id)
            self.cache.put(persisted)
            return persisted

        key = listing_key(opportunity_id)
        parts = key.split("-")
        if len(parts) < 2:
            logger.info("No opportunity found for id %s", opportunity_id)
            return None

        # Sources mint a fresh id per query, so match on the listing key
        source_id = parts[0]
        if self.aggregator.get_source(source_id) is not None:
            words = " ".join(parts[1:]).replace("_", " ")
            preferences = replace(LOOKUP_PREFERENCES, skills=(words,) + LOOKUP_PREFERENCES.skills)
            try:
                for opportunity in self.aggregator.query_source(source_id, preferences):
                    if listing_key(opportunity.id) == key:
                        logger.info("Found %s from source %s", opportunity_id, source_id)
                        found = RawOpportunity.from_dict({**opportunity.to_dict(), "id": opportunity_id})
                        self.cache.put(found)
                        return found
            except Exception as exc:
                logger.error("[%s] Error fetching %s from source: %s", source_id, opportunity_id, exc)

        logger.info("No exact match for %s, synthesizing a placeholder", opportunity_id)
        synthetic = synthesize_opportunity(opportunity_id)
        self.cache.put(synthetic)
        return synthetic
