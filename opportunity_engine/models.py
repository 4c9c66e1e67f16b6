"""Data models for the opportunity discovery pipeline."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class OpportunityType(Enum):
    FREELANCE = "FREELANCE"
    DIGITAL_PRODUCT = "DIGITAL_PRODUCT"
    CONTENT = "CONTENT"
    SERVICE = "SERVICE"
    PASSIVE = "PASSIVE"
    INFO_PRODUCT = "INFO_PRODUCT"

    @classmethod
    def parse(cls, value: Any, default: "OpportunityType | None" = None) -> "OpportunityType | None":
        """Parse a loosely formatted type name ("digital product", "Freelance")."""
        if isinstance(value, cls):
            return value
        if not value:
            return default
        key = re.sub(r"[\s\-]+", "_", str(value).strip()).upper()
        try:
            return cls(key)
        except ValueError:
            return default


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return {"LOW": 1, "MEDIUM": 2, "HIGH": 3}[self.value]

    @classmethod
    def parse(cls, value: Any, default: "RiskLevel | None" = None) -> "RiskLevel | None":
        """Parse "low"/"Medium"/RiskLevel; "any" and unknown values give the default."""
        if isinstance(value, cls):
            return value
        if not value:
            return default
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return default


class DemandLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def parse(cls, value: Any) -> "DemandLevel | None":
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


class IncomeTimeframe(Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    PROJECT = "project"

    @property
    def monthly_factor(self) -> float:
        return _MONTHLY_FACTORS[self]

    @classmethod
    def parse(cls, value: Any) -> "IncomeTimeframe":
        """Accepts "hourly", "per month", "monthly", "project", ... (default month)."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for timeframe in cls:
            if timeframe.value in text:
                return timeframe
        if "annual" in text:
            return cls.YEAR
        if "daily" in text:
            return cls.DAY
        return cls.MONTH


_MONTHLY_FACTORS = {
    IncomeTimeframe.HOUR: 160.0,
    IncomeTimeframe.DAY: 20.0,
    IncomeTimeframe.WEEK: 4.0,
    IncomeTimeframe.MONTH: 1.0,
    IncomeTimeframe.YEAR: 1 / 12,
    IncomeTimeframe.PROJECT: 1 / 3,
}


# ── Ranges ─────────────────────────────────────────────────────────────────


@dataclass
class IncomeRange:
    min: float = 0.0
    max: float = 0.0
    timeframe: IncomeTimeframe = IncomeTimeframe.MONTH

    @property
    def monthly_min(self) -> float:
        return self.min * self.timeframe.monthly_factor

    @property
    def monthly_max(self) -> float:
        return self.max * self.timeframe.monthly_factor

    @property
    def monthly_average(self) -> float:
        return (self.monthly_min + self.monthly_max) / 2

    @property
    def is_empty(self) -> bool:
        return self.min <= 0 and self.max <= 0

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max, "timeframe": self.timeframe.value}

    @classmethod
    def from_dict(cls, data: dict | None) -> "IncomeRange":
        data = data or {}
        return cls(
            min=float(data.get("min") or 0),
            max=float(data.get("max") or 0),
            timeframe=IncomeTimeframe.parse(data.get("timeframe")),
        )


@dataclass
class CostRange:
    min: float = 0.0
    max: float = 0.0

    @property
    def average(self) -> float:
        return (self.min + self.max) / 2

    @classmethod
    def from_dict(cls, data: dict | None) -> "CostRange":
        data = data or {}
        return cls(min=float(data.get("min") or 0), max=float(data.get("max") or 0))


@dataclass
class TimeRange:
    """Hours per week."""

    min: float = 0.0
    max: float = 0.0

    @property
    def average(self) -> float:
        return (self.min + self.max) / 2

    @classmethod
    def from_dict(cls, data: dict | None) -> "TimeRange":
        data = data or {}
        return cls(min=float(data.get("min") or 0), max=float(data.get("max") or 0))


# ── Opportunity ────────────────────────────────────────────────────────────


@dataclass
class SuccessStory:
    name: str
    background: str = ""
    journey: str = ""
    outcome: str = ""


@dataclass
class Resource:
    title: str
    url: str


@dataclass
class MatchFactor:
    """One contributing factor in a match explanation."""

    name: str
    value: float


@dataclass
class SkillGapItem:
    skill: str
    days: float
    kind: str  # "required", "nice_to_have" or "prerequisite"
    node_id: Optional[str] = None


@dataclass
class SkillGapReport:
    total_days: int
    breakdown: list[SkillGapItem] = field(default_factory=list)
    missing_required: list[str] = field(default_factory=list)
    missing_nice_to_have: list[str] = field(default_factory=list)
    resources: list[dict] = field(default_factory=list)
    confidence: float = 0.5
    used_fallback: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SkillGapReport":
        return cls(
            total_days=int(data.get("total_days", 0)),
            breakdown=[SkillGapItem(**item) for item in data.get("breakdown", [])],
            missing_required=list(data.get("missing_required", [])),
            missing_nice_to_have=list(data.get("missing_nice_to_have", [])),
            resources=list(data.get("resources", [])),
            confidence=float(data.get("confidence", 0.5)),
            used_fallback=bool(data.get("used_fallback", False)),
        )


@dataclass
class RawOpportunity:
    """A candidate income-generating activity surfaced to a user.

    The id cannot change once it has been assigned. Everything from
    ``match_score`` down is annotation written by the pipeline.
    """

    id: str
    source: str
    title: str
    description: str = ""
    type: OpportunityType = OpportunityType.FREELANCE
    required_skills: list[str] = field(default_factory=list)
    nice_to_have_skills: list[str] = field(default_factory=list)
    income: IncomeRange = field(default_factory=IncomeRange)
    startup_cost: CostRange = field(default_factory=CostRange)
    time_required: TimeRange = field(default_factory=TimeRange)
    entry_barrier: RiskLevel = RiskLevel.MEDIUM
    market_demand: Optional[DemandLevel] = None
    steps: list[str] = field(default_factory=list)
    success_stories: list[SuccessStory] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    platform: str = ""
    category: str = ""
    url: str = ""
    location: str = ""  # "remote", "local", "both" or "" when unknown

    match_score: Optional[float] = None
    match_explanation: list[MatchFactor] = field(default_factory=list)
    skill_gap_days: Optional[int] = None
    time_to_first_revenue: Optional[str] = None
    roi_score: Optional[int] = None
    skill_gap_analysis: Optional[SkillGapReport] = None
    synthesized: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "id":
            current = self.__dict__.get("id")
            if current and value != current:
                raise AttributeError(f"Opportunity id {current!r} is immutable")
        super().__setattr__(name, value)

    def copy(self) -> "RawOpportunity":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        """Serialize to a plain, JSON-friendly dictionary."""
        d = asdict(self)
        d["type"] = self.type.value
        d["entry_barrier"] = self.entry_barrier.value
        d["market_demand"] = self.market_demand.value if self.market_demand else None
        d["income"] = self.income.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "RawOpportunity":
        """Build an opportunity from a plain dict (persisted, catalog or AI data)."""
        gap = data.get("skill_gap_analysis")
        return cls(
            id=str(data.get("id") or ""),
            source=str(data.get("source") or ""),
            title=str(data.get("title") or "Untitled Opportunity"),
            description=str(data.get("description") or ""),
            type=OpportunityType.parse(data.get("type"), OpportunityType.FREELANCE),
            required_skills=list(data.get("required_skills") or []),
            nice_to_have_skills=list(data.get("nice_to_have_skills") or []),
            income=IncomeRange.from_dict(data.get("income")),
            startup_cost=CostRange.from_dict(data.get("startup_cost")),
            time_required=TimeRange.from_dict(data.get("time_required")),
            entry_barrier=RiskLevel.parse(data.get("entry_barrier"), RiskLevel.MEDIUM),
            market_demand=DemandLevel.parse(data.get("market_demand")),
            steps=list(data.get("steps") or []),
            success_stories=[SuccessStory(**s) for s in data.get("success_stories") or []],
            resources=[Resource(**r) for r in data.get("resources") or []],
            platform=str(data.get("platform") or ""),
            category=str(data.get("category") or ""),
            url=str(data.get("url") or ""),
            location=str(data.get("location") or ""),
            match_score=data.get("match_score"),
            match_explanation=[MatchFactor(**f) for f in data.get("match_explanation") or []],
            skill_gap_days=data.get("skill_gap_days"),
            time_to_first_revenue=data.get("time_to_first_revenue"),
            roi_score=data.get("roi_score"),
            skill_gap_analysis=SkillGapReport.from_dict(gap) if gap else None,
            synthesized=bool(data.get("synthesized", False)),
        )

    def __repr__(self) -> str:
        return (
            f"RawOpportunity(id={self.id!r}, title={self.title!r}, "
            f"type={self.type.value}, source={self.source!r}, score={self.match_score!r})"
        )


# ── Preferences & Results ──────────────────────────────────────────────────


def parse_time_availability(text: str | None) -> float:
    """Bucket free-text availability into hours per week (0 when unknown)."""
    if not text:
        return 0.0
    value = str(text).strip().lower()
    if "full" in value:
        return 40.0
    if "part" in value:
        return 20.0
    if "evening" in value:
        return 10.0
    if "weekend" in value:
        return 16.0
    match = re.match(r"\s*(\d+(?:\.\d+)?)", value)
    if match:
        return float(match.group(1))
    return 0.0


@dataclass(frozen=True)
class DiscoveryPreferences:
    """Immutable per-request discovery preferences."""

    user_id: str
    skills: tuple[str, ...] = ()
    time_availability: str = "any"
    risk_appetite: str = "any"  # low / medium / high / any
    income_goal: float = 0.0  # monthly, 0 = unset
    work_preference: str = "any"  # remote / local / both / any
    use_ml: bool = False
    use_enhanced: bool = False
    use_skill_gap_analysis: bool = True
    include_roi: bool = False
    discoverable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "skills", tuple(s.strip() for s in self.skills if s and s.strip()))

    @property
    def available_hours(self) -> float:
        if str(self.time_availability).strip().lower() == "any":
            return 0.0
        return parse_time_availability(self.time_availability)

    @property
    def risk_level(self) -> RiskLevel | None:
        """User risk tier, or None when the appetite is "any"."""
        return RiskLevel.parse(self.risk_appetite)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["skills"] = list(self.skills)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "DiscoveryPreferences":
        return cls(
            user_id=str(data.get("user_id", "")),
            skills=tuple(data.get("skills") or ()),
            time_availability=str(data.get("time_availability") or "any"),
            risk_appetite=str(data.get("risk_appetite") or "any"),
            income_goal=float(data.get("income_goal") or 0),
            work_preference=str(data.get("work_preference") or "any"),
            use_ml=bool(data.get("use_ml", False)),
            use_enhanced=bool(data.get("use_enhanced", False)),
            use_skill_gap_analysis=bool(data.get("use_skill_gap_analysis", True)),
            include_roi=bool(data.get("include_roi", False)),
            discoverable=bool(data.get("discoverable", False)),
        )


@dataclass
class SourceStats:
    """Outcome of one source during a single aggregation."""

    count: int = 0
    elapsed_seconds: float = 0.0  # -1 when the source failed
    error: Optional[str] = None


@dataclass
class SimilarUser:
    user_id: str
    username: str
    skills: list[str]
    similarity: float
    shared_opportunities: int = 0
    common_skills: list[str] = field(default_factory=list)


@dataclass
class UserProfile:
    user_id: str
    username: str
    skills: list[str] = field(default_factory=list)
    discoverable: bool = False


@dataclass
class UserHistory:
    """Recorded interactions used by the collaborative adjustment."""

    saved_types: dict[str, int] = field(default_factory=dict)
    view_counts: dict[str, int] = field(default_factory=dict)
    saved_ids: set[str] = field(default_factory=set)
    popularity: dict[str, float] = field(default_factory=dict)

    @property
    def total_saved(self) -> int:
        return sum(self.saved_types.values())

    def saved_share(self, opportunity_type: OpportunityType) -> float:
        total = self.total_saved
        if not total:
            return 0.0
        return self.saved_types.get(opportunity_type.value, 0) / total


@dataclass
class DiscoveryResults:
    request_id: str
    user_id: str
    opportunities: list[RawOpportunity] = field(default_factory=list)
    similar_users: list[SimilarUser] = field(default_factory=list)
    enhanced: bool = False
    ml_enabled: bool = False
    skill_gap_analysis_enabled: bool = False
    include_roi: bool = False
    discoverable: bool = False
    source_stats: dict[str, SourceStats] = field(default_factory=dict)
    user_info: dict[str, Any] = field(default_factory=dict)
    processing_time_ms: int = 0
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "user_id": self.user_id,
            "opportunities": [o.to_dict() for o in self.opportunities],
            "similar_users": [asdict(u) for u in self.similar_users],
            "enhanced": self.enhanced,
            "ml_enabled": self.ml_enabled,
            "skill_gap_analysis_enabled": self.skill_gap_analysis_enabled,
            "include_roi": self.include_roi,
            "discoverable": self.discoverable,
            "source_stats": {k: asdict(v) for k, v in self.source_stats.items()},
            "user_info": self.user_info,
            "processing_time_ms": self.processing_time_ms,
            "created_at": self.created_at,
        }
