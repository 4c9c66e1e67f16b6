"""Configuration loader for the opportunity discovery pipeline.

Reads config.yaml and returns typed configuration objects that the
orchestrator, the scoring engine and the individual sources consume.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


@dataclass
class SourceConfig:
    """Configuration for a single opportunity source."""

    name: str  # also the source id and the opportunity id prefix
    source_type: str  # "marketplace", "digital_products", "newsletter"
    enabled: bool = True
    url: str = ""  # API or listing page; empty means catalog only
    api_key_env: str = ""  # environment variable holding the API token
    keywords: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class AIConfig:
    enabled: bool = True
    model: str = "claude-haiku-4-5-20251001"
    api_key_env: str = "ANTHROPIC_API_KEY"
    max_tokens: int = 4000
    timeout_seconds: float = 60.0
    generate_count: int = 5


@dataclass
class ClassicWeights:
    skill: float = 0.40
    income: float = 0.20
    time: float = 0.15
    risk: float = 0.15
    quality_bonus: float = 0.05
    required_share: float = 0.75  # within the skill component


@dataclass
class RoiWeights:
    income: float = 0.6
    cost: float = 0.2
    time: float = 0.2
    income_max: float = 5000.0


def _default_ml_weights() -> dict[str, float]:
    return {
        "skill_match": 2.2,
        "income_match": 1.5,
        "time_match": 1.2,
        "risk_match": 1.2,
        "time_to_revenue": 1.3,
        "market_demand": 0.9,
        "diversity": 0.8,
        "popularity": 0.7,
        "novice_accessibility": 0.6,
        "content_completeness": 0.5,
    }


@dataclass
class ScoringConfig:
    classic: ClassicWeights = field(default_factory=ClassicWeights)
    ml_weights: dict[str, float] = field(default_factory=_default_ml_weights)
    roi: RoiWeights = field(default_factory=RoiWeights)
    collaborative: bool = True
    roi_blend: float = 0.2


@dataclass
class DiversityConfig:
    target_size: int = 15
    max_size: int = 20
    few_types_threshold: int = 3  # at or below this many types use the loose cap
    few_types_cap: int = 5
    many_types_cap: int = 3


@dataclass
class FilterConfig:
    time_tolerance: float = 1.25
    risk_steps: int = 1
    income_floor_ratio: float = 0.15


@dataclass
class EngineConfig:
    """Top-level pipeline configuration."""

    sources: list[SourceConfig] = field(default_factory=list)
    data_dir: str = "data"
    log_level: str = "INFO"
    request_delay_seconds: float = 1.0  # polite delay between HTTP requests
    request_timeout_seconds: float = 15.0
    user_agent: str = "opportunity-engine/0.1 (+https://example.com/opportunity-engine)"

    source_timeout_seconds: float = 30.0
    cache_ttl_minutes: float = 30.0
    cache_sweep_minutes: float = 15.0
    estimator_seed: int | None = None
    market_data_path: str = ""

    skill_gap_top_n: int = 20
    rerank_top_n: int = 5
    similar_users_scan: int = 100
    similar_users_limit: int = 5

    ai: AIConfig = field(default_factory=AIConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    diversity: DiversityConfig = field(default_factory=DiversityConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]


def _section(cls, raw: dict | None):
    """Build a flat dataclass from a YAML mapping, ignoring unknown keys."""
    raw = raw or {}
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(sorted(unknown)))
    return cls(**{k: v for k, v in raw.items() if k in known})


def load_config(path: Path | str | None = None) -> EngineConfig:
    """Load and validate the pipeline configuration from a YAML file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
        return EngineConfig()

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f)

    if not raw:
        return EngineConfig()

    sources = []
    for src in raw.get("sources", []):
        sources.append(
            SourceConfig(
                name=src["name"],
                source_type=src["source_type"],
                enabled=src.get("enabled", True),
                url=src.get("url", ""),
                api_key_env=src.get("api_key_env", ""),
                keywords=src.get("keywords", []),
                params=src.get("params", {}),
            )
        )

    scoring_raw = raw.get("scoring", {}) or {}
    ml_weights = _default_ml_weights()
    ml_weights.update(scoring_raw.get("ml_weights", {}) or {})
    scoring = ScoringConfig(
        classic=_section(ClassicWeights, scoring_raw.get("classic")),
        ml_weights=ml_weights,
        roi=_section(RoiWeights, scoring_raw.get("roi")),
        collaborative=scoring_raw.get("collaborative", True),
        roi_blend=scoring_raw.get("roi_blend", 0.2),
    )

    defaults = EngineConfig()
    return EngineConfig(
        sources=sources,
        data_dir=raw.get("data_dir", defaults.data_dir),
        log_level=raw.get("log_level", defaults.log_level),
        request_delay_seconds=raw.get("request_delay_seconds", defaults.request_delay_seconds),
        request_timeout_seconds=raw.get("request_timeout_seconds", defaults.request_timeout_seconds),
        user_agent=raw.get("user_agent", defaults.user_agent),
        source_timeout_seconds=raw.get("source_timeout_seconds", defaults.source_timeout_seconds),
        cache_ttl_minutes=raw.get("cache_ttl_minutes", defaults.cache_ttl_minutes),
        cache_sweep_minutes=raw.get("cache_sweep_minutes", defaults.cache_sweep_minutes),
        estimator_seed=raw.get("estimator_seed", defaults.estimator_seed),
        market_data_path=raw.get("market_data_path", defaults.market_data_path),
        skill_gap_top_n=raw.get("skill_gap_top_n", defaults.skill_gap_top_n),
        rerank_top_n=raw.get("rerank_top_n", defaults.rerank_top_n),
        similar_users_scan=raw.get("similar_users_scan", defaults.similar_users_scan),
        similar_users_limit=raw.get("similar_users_limit", defaults.similar_users_limit),
        ai=_section(AIConfig, raw.get("ai")),
        scoring=scoring,
        diversity=_section(DiversityConfig, raw.get("diversity")),
        filters=_section(FilterConfig, raw.get("filters")),
    )
