"""Generative AI enhancement: extra opportunities and re-ranking.

The service talks to the Anthropic Messages API through the official SDK.
It is unreliable by contract: a missing key, an SDK error, an empty answer or
malformed JSON is logged, recorded against the prompt template that produced
it, and turned into an empty result (``generate``) or the unchanged input
order (``rerank``). Nothing here raises to the orchestrator.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any

import anthropic

from opportunity_engine.config import AIConfig
from opportunity_engine.errors import AIResponseError, AIServiceError
from opportunity_engine.models import (
    DiscoveryPreferences,
    OpportunityType,
    RawOpportunity,
    RiskLevel,
)
from opportunity_engine.prompts import PromptTemplateService

logger = logging.getLogger(__name__)

AI_SOURCE_ID = "anthropic"

_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_ARRAY = re.compile(r"\[.*\]", re.DOTALL)

# camelCase keys some model answers use
_KEY_ALIASES = {
    "requiredSkills": "required_skills",
    "niceToHaveSkills": "nice_to_have_skills",
    "estimatedIncome": "income",
    "startupCost": "startup_cost",
    "timeRequired": "time_required",
    "entryBarrier": "entry_barrier",
    "marketDemand": "market_demand",
    "stepsToStart": "steps",
    "successStories": "success_stories",
}

_CATEGORY_KEYWORDS = [
    ("design", "design"),
    ("writ", "writing"),
    ("develop", "development"),
    ("teach", "teaching"),
]


# ── Response parsing ───────────────────────────────────────────────────────


def parse_json_payload(text: str) -> list[Any]:
    """Extract a JSON list from a model answer.

    Tries the whole text, then a fenced code block, then the first
    bracketed array. A single object is wrapped in a list, and an object
    with an ``opportunities`` key yields that list.
    """
    if not text or not text.strip():
        raise AIResponseError("Empty response from AI service")

    candidates = [text.strip()]
    fenced = _FENCED.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    array = _ARRAY.search(text)
    if array:
        candidates.append(array.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            nested = data.get("opportunities")
            return nested if isinstance(nested, list) else [data]
        if isinstance(data, list):
            return data

    raise AIResponseError("Could not parse JSON from AI response")


def _derive_category(title: str, description: str) -> str:
    text = f"{title} {description}".lower()
    for keyword, category in _CATEGORY_KEYWORDS:
        if keyword in text:
            return category
    return ""


def normalize_opportunity(item: dict, index: int) -> RawOpportunity:
    """Validate one generated record and turn it into an opportunity."""
    data = {_KEY_ALIASES.get(k, k): v for k, v in item.items()}
    if not data.get("title"):
        raise AIResponseError("Generated opportunity has no title")

    data["type"] = OpportunityType.parse(data.get("type"), OpportunityType.FREELANCE).value
    data["entry_barrier"] = RiskLevel.parse(data.get("entry_barrier"), RiskLevel.MEDIUM).value
    data["success_stories"] = [
        {key: str(s.get(key, "")) for key in ("name", "background", "journey", "outcome")}
        for s in data.get("success_stories") or []
        if isinstance(s, dict) and s.get("name")
    ]
    data["resources"] = [
        {"title": r.get("title", ""), "url": r.get("url", "")}
        for r in data.get("resources") or []
        if isinstance(r, dict)
    ]
    data["category"] = data.get("category") or _derive_category(
        str(data.get("title", "")), str(data.get("description", ""))
    )
    data["id"] = f"{AI_SOURCE_ID}-{int(time.time() * 1000)}-{index}"
    data["source"] = AI_SOURCE_ID
    for annotation in ("match_score", "match_explanation", "skill_gap_days",
                       "skill_gap_analysis", "roi_score", "time_to_first_revenue"):
        data.pop(annotation, None)

    return RawOpportunity.from_dict(data)


def _prompt_variables(preferences: DiscoveryPreferences, count: int = 0) -> dict[str, object]:
    goal = preferences.income_goal
    return {
        "count": count,
        "skillsText": ", ".join(preferences.skills) or "no specific skills listed",
        "timeText": preferences.time_availability,
        "riskText": preferences.risk_appetite,
        "incomeText": f"${goal:,.0f} per month" if goal else "not specified",
        "prefText": preferences.work_preference,
        "detailsText": "",
    }


# ── Service ────────────────────────────────────────────────────────────────


class AIEnhancementService:
    def __init__(self, client: Any, prompts: PromptTemplateService, config: AIConfig | None = None):
        self.client = client
        self.prompts = prompts
        self.config = config or AIConfig()

    @classmethod
    def from_config(cls, config: AIConfig, prompts: PromptTemplateService) -> "AIEnhancementService":
        """Build the service; without an API key it stays unavailable."""
        client = None
        api_key = os.environ.get(config.api_key_env, "")
        if config.enabled and api_key:
            client = anthropic.Anthropic(api_key=api_key, timeout=config.timeout_seconds)
        elif config.enabled:
            logger.warning("%s not set, AI enhancement disabled", config.api_key_env)
        return cls(client, prompts, config)

    @property
    def available(self) -> bool:
        return self.client is not None

    def _complete(self, prompt: str) -> str:
        system = self.prompts.fill_template("system", {})
        try:
            response = self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise AIServiceError(f"AI request failed: {exc}", original_error=exc) from exc

        return "".join(
            getattr(block, "text", "")
            for block in response.content
            if getattr(block, "type", "") == "text"
        )

    def generate(self, preferences: DiscoveryPreferences, count: int | None = None) -> list[RawOpportunity]:
        """Generate personalized opportunities; empty list on any failure."""
        if not self.available:
            return []

        count = count or self.config.generate_count
        prompt, template_id = self.prompts.render(
            "opportunity_generation", _prompt_variables(preferences, count)
        )

        try:
            items = parse_json_payload(self._complete(prompt))
            opportunities = []
            for index, item in enumerate(items):
                if not isinstance(item, dict):
                    continue
                try:
                    opportunities.append(normalize_opportunity(item, index))
                except (AIResponseError, TypeError, ValueError, AttributeError) as exc:
                    logger.debug("Skipping generated item %d: %s", index, exc)
            if not opportunities:
                raise AIResponseError("AI response contained no usable opportunities")
        except Exception as exc:
            self.prompts.track_error(template_id, type(exc).__name__)
            logger.error("AI opportunity generation failed: %s", exc)
            return []

        self.prompts.track_success(template_id)
        logger.info("AI generated %d opportunities", len(opportunities))
        return opportunities[:count]

    def rerank(self, opportunities: list[RawOpportunity], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        """Let the model reorder a short list; the input order on any failure.

        The existing scores are redistributed over the new order so that a
        later sort by score keeps it.
        """
        if not self.available or len(opportunities) < 2:
            return list(opportunities)

        variables = _prompt_variables(preferences)
        variables["opportunitiesText"] = "\n".join(f"{o.id}: {o.title}" for o in opportunities)
        prompt, template_id = self.prompts.render("rerank", variables)

        try:
            items = parse_json_payload(self._complete(prompt))
            by_id = {o.id: o for o in opportunities}
            ordered: list[RawOpportunity] = []
            for item in items:
                opp_id = item.get("id") if isinstance(item, dict) else item
                opportunity = by_id.pop(str(opp_id), None)
                if opportunity is not None:
                    ordered.append(opportunity)
            if not ordered:
                raise AIResponseError("Rerank response named none of the opportunities")
        except Exception as exc:
            self.prompts.track_error(template_id, type(exc).__name__)
            logger.error("AI rerank failed: %s", exc)
            return list(opportunities)

        self.prompts.track_success(template_id)
        ordered.extend(o for o in opportunities if o.id in by_id)

        scores = sorted((o.match_score for o in opportunities if o.match_score is not None), reverse=True)
        if len(scores) == len(ordered):
            for opportunity, score in zip(ordered, scores):
                opportunity.match_score = score

        logger.info("AI reranked %d opportunities", len(ordered))
        return ordered
