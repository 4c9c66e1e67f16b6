"""Freelance marketplace source (Upwork-style job search API).

The API returns open jobs for a skill query:

    GET {url}?q=writing OR seo&paging=0;20
    {"jobs": [{"id": "...", "title": "...", "snippet": "...",
               "skills": [...], "category": "...",
               "hourly_rate_min": 25, "hourly_rate_max": 40, "budget": 0,
               "workload": "Less than 30 hrs/week",
               "experience_level": "Entry Level", "proposals_count": 12,
               "url": "..."}]}

Without an API token the source offers its built-in catalog.
"""

from __future__ import annotations

import logging

from opportunity_engine.models import DiscoveryPreferences, OpportunityType, RawOpportunity, RiskLevel
from opportunity_engine.sources.base import BaseSource

logger = logging.getLogger(__name__)

_EXPERIENCE_BARRIER = {
    "entry level": RiskLevel.LOW,
    "intermediate": RiskLevel.MEDIUM,
    "expert": RiskLevel.HIGH,
}


class MarketplaceSource(BaseSource):
    """Freelance gigs from a job marketplace."""

    catalog_section = "marketplace"
    default_type = OpportunityType.FREELANCE

    def fetch_api(self, skills: list[str], preferences: DiscoveryPreferences) -> list[RawOpportunity]:
        max_results = self.source_config.params.get("max_results", 20)
        query = " OR ".join(skills) if skills else "freelance"
        resp = self._get(
            self.source_config.url,
            params={"q": query, "paging": f"0;{max_results}"},
            headers=self._auth_headers(),
        )
        jobs = resp.json().get("jobs", [])
        logger.debug("[%s] API returned %d jobs", self.id, len(jobs))
        return [self._transform(job) for job in jobs if job.get("title")]

    def _transform(self, job: dict) -> RawOpportunity:
        rate_min = float(job.get("hourly_rate_min") or 0)
        rate_max = float(job.get("hourly_rate_max") or rate_min * 1.5)
        if rate_min > 0:
            income = {"min": rate_min, "max": rate_max, "timeframe": "hour"}
        else:
            budget = float(job.get("budget") or 0)
            income = {"min": budget, "max": budget, "timeframe": "project"}

        full_time = "30+" in str(job.get("workload", "")) or job.get("workload") == "Full Time"
        proposals = int(job.get("proposals_count") or 0)
        if proposals > 20:
            competition = "high"
        elif proposals > 10:
            competition = "medium"
        else:
            competition = "low"

        barrier = _EXPERIENCE_BARRIER.get(str(job.get("experience_level", "")).lower())
        if barrier is None:
            barrier = self.categorize_risk(100, 14, competition)

        return self.create_opportunity(
            str(job.get("id") or job["title"]),
            title=job["title"],
            description=job.get("snippet") or job.get("description") or "",
            required_skills=list(job.get("skills") or []),
            category=job.get("category") or "freelance",
            income=income,
            startup_cost={"min": 0, "max": 100},
            time_required={"min": 30, "max": 40} if full_time else {"min": 10, "max": 20},
            entry_barrier=barrier.value,
            market_demand="HIGH" if competition == "high" else "MEDIUM",
            location="remote",
            url=job.get("url") or "",
            steps=[
                f"Create a {self.platform} account",
                "Complete your profile with relevant samples",
                "Submit a tailored proposal",
            ],
        )
