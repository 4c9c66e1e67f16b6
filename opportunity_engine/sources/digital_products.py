"""Digital product storefront source (Gumroad-style products API).

    GET {url}?access_token=...
    {"success": true,
     "products": [{"id": "...", "name": "...", "description": "<p>html</p>",
                   "price": 1500, "sales_count": 120, "tags": [...],
                   "short_url": "..."}]}

Each best-selling product becomes a "make something similar" opportunity.
Product descriptions are HTML and are flattened to text.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from opportunity_engine.models import DiscoveryPreferences, OpportunityType, RawOpportunity
from opportunity_engine.sources.base import BaseSource

logger = logging.getLogger(__name__)


def html_to_text(html: str) -> str:
    return BeautifulSoup(html or "", "html.parser").get_text(" ", strip=True)


class DigitalProductSource(BaseSource):
    """Digital product ideas modelled on what already sells."""

    catalog_section = "digital_products"
    default_type = OpportunityType.DIGITAL_PRODUCT

    def fetch_api(self, skills: list[str], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        resp = self._get(self.source_config.url, params={"access_token": self.api_key})
        data = resp.json()
        if not data.get("success", True):
            logger.warning("[%s] API reported failure: %s", self.id, data.get("message"))
            return []

        products = data.get("products", [])
        wanted = [s.lower() for s in skills]
        opportunities = []
        for product in products:
            if not product.get("name"):
                continue
            haystack = " ".join([product["name"], *product.get("tags", [])]).lower()
            if wanted and not any(skill in haystack for skill in wanted):
                continue
            opportunities.append(self._transform(product))

        logger.debug("[%s] %d of %d products matched skills", self.id, len(opportunities), len(products))
        return opportunities

    def _transform(self, product: dict) -> RawOpportunity:
        price = float(product.get("price") or 0) / 100
        monthly_sales = max(1, int(product.get("sales_count") or 0) // 12)
        tags = list(product.get("tags") or [])
        description = html_to_text(product.get("description", ""))

        return self.create_opportunity(
            str(product.get("id") or product["name"]),
            title=f"Create a product like \"{product['name']}\"",
            description=description[:1000],
            required_skills=tags[:3],
            nice_to_have_skills=["marketing"],
            category="digital_products",
            income={"min": round(price * monthly_sales * 0.1), "max": round(price * monthly_sales),
                    "timeframe": "month"},
            startup_cost={"min": 0, "max": 100},
            time_required={"min": 5, "max": 15},
            entry_barrier=self.categorize_risk(100, 30, "high" if monthly_sales > 50 else "medium").value,
            url=product.get("short_url") or "",
            steps=[
                "Study the product's reviews and gaps",
                "Build a focused alternative for a narrower audience",
                f"Launch it on {self.platform} with a launch discount",
            ],
        )
