"""Hand-authored supplementary opportunities keyed by skill category.

This is the deterministic path used when AI generation is unavailable or
returns too little: it always yields a coherent, curated set.
"""

from __future__ import annotations

import logging
import time

from opportunity_engine.catalog import CATALOG_PATH, build_opportunity, load_section
from opportunity_engine.models import DiscoveryPreferences, RawOpportunity

logger = logging.getLogger(__name__)

SUPPLEMENTARY_SOURCE_ID = "supplementary"
MIN_SUPPLEMENTARY = 10

SKILL_CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "webDevelopment": ["web", "html", "css", "javascript", "react", "angular", "vue",
                       "frontend", "front-end"],
    "writing": ["writ", "blog", "content", "edit", "copy", "journal", "story", "article"],
    "design": ["design", "graphic", "illust", "photo", "ui", "ux", "visual", "art", "creative"],
    "marketing": ["market", "seo", "social media", "advertis", "sales", "brand", "growth",
                  "audience"],
    "teaching": ["teach", "coach", "mentor", "train", "educat", "instruct", "tutor",
                 "curriculum"],
    "ecommerce": ["ecommerce", "e-commerce", "product", "retail", "shop", "merch", "amazon",
                  "etsy", "shopify"],
    "programming": ["program", "develop", "code", "software", "app", "python", "java", "c++",
                    "swift", "mobile"],
    "finance": ["finance", "accounting", "bookkeep", "tax", "investment", "financial", "budget"],
}


def detect_skill_categories(skills: list[str] | tuple[str, ...]) -> list[str]:
    """Categories whose keywords appear in any skill, in table order."""
    lowered = [s.lower() for s in skills]
    return [
        category
        for category, keywords in SKILL_CATEGORY_KEYWORDS.items()
        if any(k in skill for k in keywords for skill in lowered)
    ]


class SupplementaryGenerator:
    def __init__(self, catalog_path=CATALOG_PATH):
        self.catalog_path = catalog_path

    def generate(self, preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        """Curated opportunities for the user's skill categories.

        General opportunities are added when the category sets give fewer
        than ten.
        """
        section = load_section("supplementary", self.catalog_path)
        stamp = int(time.time() * 1000)
        categories = detect_skill_categories(preferences.skills)

        opportunities: list[RawOpportunity] = []
        for category in categories:
            for n, entry in enumerate(section.get(category, []), start=1):
                opportunities.append(self._build(entry, stamp, category, n))

        if len(opportunities) < MIN_SUPPLEMENTARY:
            for n, entry in enumerate(section.get("general", []), start=1):
                opportunities.append(self._build(entry, stamp, "general", n))

        logger.info(
            "Generated %d supplementary opportunities for categories: %s",
            len(opportunities), ", ".join(categories) or "none",
        )
        return opportunities

    @staticmethod
    def _build(entry: dict, stamp: int, category: str, n: int) -> RawOpportunity:
        return build_opportunity(entry, f"supp-{stamp}-{category}-{n}", SUPPLEMENTARY_SOURCE_ID)
