"""Newsletter source based on a publication leaderboard page.

The leaderboard is server-rendered HTML. Categories are headings (<h2> or
<h3>) followed by links to the top publications in that category:

    <h2>Technology</h2>
    <a href="https://example.substack.com">Example Tech Weekly</a>

Each category becomes one "start a newsletter in this niche" opportunity
with the leading publications cited as examples.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from bs4 import BeautifulSoup

from opportunity_engine.models import DiscoveryPreferences, OpportunityType, RawOpportunity
from opportunity_engine.sources.base import BaseSource

logger = logging.getLogger(__name__)


class NewsletterSource(BaseSource):
    """Paid newsletter opportunities by niche."""

    catalog_section = "newsletter"
    default_type = OpportunityType.CONTENT

    def fetch_api(self, skills: list[str], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        resp = self._get(self.source_config.url)
        categories = self.parse_leaderboard(resp.text)
        max_publications = self.source_config.params.get("max_publications", 10)

        opportunities = []
        for category, publications in categories.items():
            examples = publications[:3]
            opportunities.append(self.create_opportunity(
                category,
                title=f"Start a {category} Newsletter",
                description=(
                    f"Readers pay for focused {category.lower()} newsletters. "
                    f"Leading examples: {', '.join(name for name, _ in examples)}."
                ),
                required_skills=["writing"],
                nice_to_have_skills=[category.lower(), "marketing"],
                category="newsletter",
                income={"min": 150, "max": 3000, "timeframe": "month"},
                startup_cost={"min": 0, "max": 50},
                time_required={"min": 5, "max": 10},
                entry_barrier="LOW",
                location="remote",
                resources=[{"title": name, "url": url} for name, url in examples],
                steps=[
                    f"Read the top {category.lower()} publications",
                    "Publish ten free issues",
                    "Open a paid tier for your most engaged readers",
                ],
            ))
            if len(opportunities) >= max_publications:
                break

        return opportunities

    def parse_leaderboard(self, html: str) -> "OrderedDict[str, list[tuple[str, str]]]":
        """Map category heading -> [(publication name, url), ...] in page order."""
        soup = BeautifulSoup(html, "html.parser")
        categories: OrderedDict[str, list[tuple[str, str]]] = OrderedDict()

        for link in soup.find_all("a", href=True):
            href = link["href"]
            if ".substack.com" not in href and "/p/" not in href:
                continue
            name = link.get_text(strip=True)
            if not name:
                continue
            heading = link.find_previous(["h2", "h3"])
            category = heading.get_text(strip=True) if heading else "General"
            publications = categories.setdefault(category, [])
            if all(url != href for _, url in publications):
                publications.append((name, href))

        logger.debug("[%s] Parsed %d leaderboard categories", self.id, len(categories))
        return categories
