"""Skill graph with prerequisites and learning-time estimates.

Each node carries a complexity rank that maps to a base estimate in days.
Observed learning times recorded through ``record_learning_time`` are blended
into that estimate, trusting the observations more as samples accumulate.
The running average is the only state shared across requests, so every node
has its own lock.
"""

from __future__ import annotations

import logging
import random
import re
import threading
from dataclasses import dataclass, field
from typing import NamedTuple

from opportunity_engine.models import SkillGapItem

logger = logging.getLogger(__name__)

# Index = complexity - 1
COMPLEXITY_DAYS = [1, 3, 7, 14, 21, 30, 45, 60, 90, 120]

MAX_GAP_DAYS = 90
NICE_TO_HAVE_WEIGHT = 0.7

REQUIRED_FALLBACK_DAYS = (7, 21)
NICE_TO_HAVE_FALLBACK_DAYS = (3, 7)


@dataclass
class LearningResource:
    title: str
    url: str
    estimated_hours: int = 0


@dataclass
class SkillNode:
    id: str
    name: str
    category: str
    prerequisites: set[str] = field(default_factory=set)
    complexity: int = 5
    resources: list[LearningResource] = field(default_factory=list)
    observed_average_days: float = 0.0
    sample_count: int = 0

    @property
    def base_days(self) -> int:
        index = min(max(self.complexity, 1), len(COMPLEXITY_DAYS)) - 1
        return COMPLEXITY_DAYS[index]


class SkillGapResult(NamedTuple):
    days: int
    breakdown: list[SkillGapItem]
    missing_required: list[str]
    missing_nice_to_have: list[str]
    used_fallback: bool


class BoundedEstimator:
    """Bounded day estimates for skills the graph does not know.

    The estimate for a skill depends only on the seed and the skill name, so
    repeated calls agree and tests can pin the seed.
    """

    def __init__(self, seed: int | None = None):
        self.seed = seed if seed is not None else 0

    def estimate(self, key: str, low: int, high: int) -> int:
        rng = random.Random(f"{self.seed}:{key.lower()}")
        return rng.randint(low, high)


def _normalize(skill: str) -> str:
    return re.sub(r"[\s\-]+", "_", skill.strip().lower())


class SkillGraph:
    """Directed skill graph keyed by node id."""

    def __init__(self, nodes: list[SkillNode] | None = None):
        self._nodes: dict[str, SkillNode] = {}
        self._locks: dict[str, threading.Lock] = {}
        for node in nodes if nodes is not None else default_nodes():
            self.add_node(node)

    def add_node(self, node: SkillNode) -> None:
        self._nodes[node.id] = node
        self._locks.setdefault(node.id, threading.Lock())

    def get(self, node_id: str) -> SkillNode | None:
        return self._nodes.get(node_id)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # ── Matching ────────────────────────────────────────────────────────

    def match_skill(self, skill: str) -> str | None:
        """Resolve free-text skill to a node id: exact, then substring, then word."""
        key = _normalize(skill)
        if not key:
            return None

        for node in self._nodes.values():
            if key == node.id or key == _normalize(node.name):
                return node.id

        for node in self._nodes.values():
            if node.id in key or key in node.id:
                return node.id

        words = [w for w in re.split(r"[_\W]+", key) if len(w) > 3]
        for node in self._nodes.values():
            node_words = [w for w in node.id.split("_") if len(w) > 3]
            for word in words:
                if any(word in nw or nw in word for nw in node_words):
                    return node.id
        return None

    def find_skill_matches(self, text: str) -> list[str]:
        """All node ids mentioned in a free-text blob (e.g. a description)."""
        lowered = text.lower()
        matches = []
        for node in self._nodes.values():
            if node.name.lower() in lowered or node.id.replace("_", " ") in lowered:
                matches.append(node.id)
        if matches:
            return matches

        words = {w for w in re.findall(r"[a-z]+", lowered) if len(w) > 3}
        for node in self._nodes.values():
            node_words = {w for w in node.id.split("_") if len(w) > 3}
            if words & node_words:
                matches.append(node.id)
        return matches

    # ── Estimates ───────────────────────────────────────────────────────

    def estimate_learning_days(self, node_id: str) -> tuple[float, float]:
        """Return (days, confidence) for learning one skill from scratch."""
        node = self._nodes[node_id]
        with self._locks[node_id]:
            samples = node.sample_count
            average = node.observed_average_days

        base = node.base_days
        if samples == 0:
            return float(base), 0.5

        data_weight = min(0.8, samples / 100)
        adjusted = base * (1 - data_weight) + average * data_weight
        confidence = min(0.9, 0.5 + samples / 200)
        return adjusted, confidence

    def record_learning_time(self, skill_id: str, days: float) -> None:
        """Fold an observed learning time into the skill's running average."""
        if skill_id not in self._nodes:
            raise KeyError(f"Unknown skill: {skill_id}")
        if days < 0:
            raise ValueError("Learning time cannot be negative")

        node = self._nodes[skill_id]
        with self._locks[skill_id]:
            total = node.observed_average_days * node.sample_count + days
            node.sample_count += 1
            node.observed_average_days = total / node.sample_count
            logger.debug(
                "Skill %s: %d samples, average %.1f days",
                skill_id, node.sample_count, node.observed_average_days,
            )

    # ── Skill gap ───────────────────────────────────────────────────────

    def calculate_skill_gap_days(
        self,
        required: list[str],
        nice_to_have: list[str],
        user_skills: list[str],
        estimator: BoundedEstimator | None = None,
    ) -> SkillGapResult:
        """Estimated days to close the gap between a user and an opportunity."""
        estimator = estimator or BoundedEstimator()
        user_keys = {_normalize(s) for s in user_skills}
        held = {node_id for node_id in (self.match_skill(s) for s in user_skills) if node_id}

        counted: set[str] = set()
        breakdown: list[SkillGapItem] = []
        matched_any = False

        def resolve(node_id: str, weight: float, kind: str, skill: str) -> float:
            if node_id in held or node_id in counted:
                return 0.0
            counted.add(node_id)
            total = 0.0
            for prereq in sorted(self._nodes[node_id].prerequisites):
                if prereq in self._nodes:
                    total += resolve(prereq, weight, "prerequisite", prereq)
            days, _ = self.estimate_learning_days(node_id)
            days *= weight
            breakdown.append(SkillGapItem(skill=skill, days=round(days, 1), kind=kind, node_id=node_id))
            return total + days

        missing_required = [s for s in required if _normalize(s) not in user_keys]
        required_keys = {_normalize(s) for s in required}
        missing_nice = [
            s for s in nice_to_have
            if _normalize(s) not in user_keys and _normalize(s) not in required_keys
        ]

        total = 0.0
        for skill in missing_required:
            node_id = self.match_skill(skill)
            if node_id is None:
                continue
            matched_any = True
            total += resolve(node_id, 1.0, "required", skill)

        for skill in missing_nice:
            node_id = self.match_skill(skill)
            if node_id is None:
                continue
            matched_any = True
            total += resolve(node_id, NICE_TO_HAVE_WEIGHT, "nice_to_have", skill)

        used_fallback = False
        if not matched_any and (missing_required or missing_nice):
            used_fallback = True
            for skill in missing_required:
                days = estimator.estimate(skill, *REQUIRED_FALLBACK_DAYS)
                breakdown.append(SkillGapItem(skill=skill, days=days, kind="required"))
                total += days
            for skill in missing_nice:
                days = estimator.estimate(skill, *NICE_TO_HAVE_FALLBACK_DAYS)
                breakdown.append(SkillGapItem(skill=skill, days=days, kind="nice_to_have"))
                total += days

        return SkillGapResult(
            days=min(MAX_GAP_DAYS, round(total)),
            breakdown=breakdown,
            missing_required=missing_required,
            missing_nice_to_have=missing_nice,
            used_fallback=used_fallback,
        )


def default_nodes() -> list[SkillNode]:
    """The built-in skill vocabulary."""

    def node(node_id, name, category, complexity, prerequisites=(), resource=None):
        resources = [LearningResource(*resource)] if resource else []
        return SkillNode(
            id=node_id,
            name=name,
            category=category,
            prerequisites=set(prerequisites),
            complexity=complexity,
            resources=resources,
        )

    return [
        node("html", "HTML", "web_development", 2,
             resource=("MDN HTML Basics", "https://developer.mozilla.org/en-US/docs/Learn/HTML", 10)),
        node("css", "CSS", "web_development", 4, ["html"],
             ("MDN CSS First Steps", "https://developer.mozilla.org/en-US/docs/Learn/CSS", 20)),
        node("javascript", "JavaScript", "web_development", 6, ["html", "css"],
             ("The Modern JavaScript Tutorial", "https://javascript.info", 60)),
        node("content_writing", "Content Writing", "writing", 3,
             resource=("Content Writing Fundamentals", "https://www.hubspot.com/resources/courses/content-marketing", 15)),
        node("copywriting", "Copywriting", "writing", 4,
             resource=("Copyblogger Copywriting 101", "https://copyblogger.com/copywriting-101/", 20)),
        node("graphic_design", "Graphic Design", "design", 7,
             resource=("Canva Design School", "https://www.canva.com/designschool/", 40)),
        node("teaching", "Teaching", "education", 5,
             resource=("Coursera: Learning to Teach Online", "https://www.coursera.org/learn/teach-online", 25)),
        node("curriculum_design", "Curriculum Design", "education", 6, ["teaching"],
             ("Instructional Design Foundations", "https://www.linkedin.com/learning/instructional-design-essentials", 30)),
        node("fitness", "Fitness", "health", 4,
             resource=("ACE Fitness Fundamentals", "https://www.acefitness.org/education-and-resources/", 20)),
        node("personal_training", "Personal Training", "health", 6, ["fitness"],
             ("NASM Personal Trainer Guide", "https://www.nasm.org/become-a-personal-trainer", 80)),
        node("cooking", "Cooking", "culinary", 4,
             resource=("Serious Eats Technique Guides", "https://www.seriouseats.com/techniques", 20)),
        node("recipe_development", "Recipe Development", "culinary", 5, ["cooking"],
             ("Recipe Development Basics", "https://www.theculinarypro.com/recipe-development", 25)),
        node("acting", "Acting", "performing_arts", 7,
             resource=("Backstage Acting Guides", "https://www.backstage.com/magazine/acting/", 40)),
        node("voice_acting", "Voice Acting", "performing_arts", 5,
             resource=("Voice Acting 101", "https://www.voices.com/blog/voice-acting-101/", 25)),
        node("dancing", "Dancing", "performing_arts", 6,
             resource=("STEEZY Dance Fundamentals", "https://www.steezy.co/", 40)),
    ]
