"""Prompt templates for the AI enhancement service.

Templates are grouped by name; each name can have several variants. When a
template is filled, the variant with the best success rate is used. After
three consecutive failures with the same error signature a stricter variant
is spawned that insists on bare JSON output.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\{\{\s*(\w+)\s*\}\}")

FAILURE_THRESHOLD = 3

STRICT_JSON_SUFFIX = (
    "\n\nIMPORTANT: Respond with valid JSON only. Do not wrap it in markdown, "
    "do not add commentary before or after it, and make sure every string is "
    "properly quoted and escaped."
)


@dataclass
class PromptTemplate:
    id: str
    name: str
    text: str
    version: int = 1
    parent_id: str | None = None
    success_count: int = 0
    error_count: int = 0
    consecutive_errors: int = 0
    last_error_signature: str | None = None
    spawned_variant: bool = False
    error_signatures: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        attempts = self.success_count + self.error_count
        if attempts == 0:
            return 0.5  # untried variants rank between good and bad ones
        return self.success_count / attempts

    def render(self, variables: dict[str, object]) -> str:
        def substitute(match: re.Match) -> str:
            key = match.group(1)
            if key not in variables:
                logger.debug("Template %s: no value for {{%s}}", self.id, key)
                return ""
            return str(variables[key])

        return _VARIABLE.sub(substitute, self.text)


SYSTEM_PROMPT = """You are an expert career and side-income advisor. You suggest \
realistic, specific ways for people to earn money with the skills they already \
have. You are honest about income ranges, startup costs and time commitments, \
and you always answer in the exact structured format you are asked for."""

GENERATION_PROMPT = """Suggest {{count}} personalized monetization opportunities.

User profile:
- Skills: {{skillsText}}
- Time available: {{timeText}}
- Risk appetite: {{riskText}}
- Income goal: {{incomeText}}
- Work preference: {{prefText}}
{{detailsText}}

Return a JSON array. Each element must have:
"title", "description", "type" (one of FREELANCE, DIGITAL_PRODUCT, CONTENT, \
SERVICE, PASSIVE, INFO_PRODUCT), "required_skills" (list), \
"nice_to_have_skills" (list), "income" {"min", "max", "timeframe"}, \
"startup_cost" {"min", "max"}, "time_required" {"min", "max"} in hours per week, \
"entry_barrier" (LOW, MEDIUM or HIGH), "steps" (list of strings), \
"resources" (list of {"title", "url"})."""

GENERATION_JSON_FOCUS_PROMPT = """Return ONLY a JSON array with exactly {{count}} \
objects describing monetization opportunities for this person. No prose.

Skills: {{skillsText}}
Time: {{timeText}}
Risk appetite: {{riskText}}
Income goal: {{incomeText}}
Work preference: {{prefText}}
{{detailsText}}

Object keys: title, description, type (FREELANCE|DIGITAL_PRODUCT|CONTENT|\
SERVICE|PASSIVE|INFO_PRODUCT), required_skills, nice_to_have_skills, \
income {min, max, timeframe}, startup_cost {min, max}, time_required {min, max}, \
entry_barrier (LOW|MEDIUM|HIGH), steps, resources [{title, url}]."""

RERANK_PROMPT = """Reorder these opportunities from best to worst fit for the user.

User skills: {{skillsText}}
Time available: {{timeText}}
Risk appetite: {{riskText}}
Income goal: {{incomeText}}

Opportunities (id: title):
{{opportunitiesText}}

Return a JSON array of the opportunity ids in the new order."""


class PromptTemplateService:
    def __init__(self, register_defaults: bool = True):
        self._lock = threading.Lock()
        self._templates: dict[str, PromptTemplate] = {}
        if register_defaults:
            self.register("system", SYSTEM_PROMPT, template_id="system")
            self.register("opportunity_generation", GENERATION_PROMPT,
                          template_id="opportunity_generation")
            self.register("opportunity_generation", GENERATION_JSON_FOCUS_PROMPT,
                          template_id="opportunity_generation-json-focus")
            self.register("rerank", RERANK_PROMPT, template_id="rerank")

    def register(self, name: str, text: str, template_id: str | None = None,
                 parent_id: str | None = None, version: int = 1) -> PromptTemplate:
        template = PromptTemplate(
            id=template_id or f"{name}-{len(self.variants(name)) + 1}",
            name=name,
            text=text,
            version=version,
            parent_id=parent_id,
        )
        with self._lock:
            self._templates[template.id] = template
        return template

    def get(self, template_id: str) -> PromptTemplate | None:
        with self._lock:
            return self._templates.get(template_id)

    def variants(self, name: str) -> list[PromptTemplate]:
        with self._lock:
            return [t for t in self._templates.values() if t.name == name]

    def select(self, name: str) -> PromptTemplate:
        """Best variant for a template name by success rate (newest wins ties)."""
        candidates = self.variants(name)
        if not candidates:
            raise KeyError(f"No prompt template named {name!r}")
        return max(candidates, key=lambda t: (t.success_rate, t.version))

    def render(self, name: str, variables: dict[str, object]) -> tuple[str, str]:
        """Fill the best variant; returns (text, template_id) for outcome tracking."""
        template = self.select(name)
        return template.render(variables), template.id

    def fill_template(self, name: str, variables: dict[str, object]) -> str:
        text, _ = self.render(name, variables)
        return text

    # ── Outcome tracking ───────────────────────────────────────────────────

    def track_success(self, template_id: str) -> None:
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return
            template.success_count += 1
            template.consecutive_errors = 0
            template.last_error_signature = None

    def track_error(self, template_id: str, signature: str) -> PromptTemplate | None:
        """Record a failure; returns the spawned variant when one is created."""
        with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return None

            template.error_count += 1
            template.error_signatures[signature] = template.error_signatures.get(signature, 0) + 1
            if signature == template.last_error_signature:
                template.consecutive_errors += 1
            else:
                template.consecutive_errors = 1
                template.last_error_signature = signature

            if template.consecutive_errors < FAILURE_THRESHOLD or template.spawned_variant:
                return None

            template.spawned_variant = True
            variant = PromptTemplate(
                id=f"{template.id}-v{template.version + 1}",
                name=template.name,
                text=template.text + STRICT_JSON_SUFFIX,
                version=template.version + 1,
                parent_id=template.id,
            )
            self._templates[variant.id] = variant

        logger.warning(
            "Template %s failed %d times with %r, created variant %s",
            template_id, FAILURE_THRESHOLD, signature, variant.id,
        )
        return variant
