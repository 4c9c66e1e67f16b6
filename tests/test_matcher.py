"""Tests for the matcher module (dedup and preference filters).

Tests cover:
- Deduplication (duplicates, previously recommended ids, missing ids)
- Time, risk, income and work preference filters
- Full preference filter pipeline
- Rejection summaries
"""

import pytest

from opportunity_engine.config import FilterConfig
from opportunity_engine.matcher import (
    FilterResult,
    RejectionReason,
    apply_income_filter,
    apply_risk_filter,
    apply_time_filter,
    apply_work_preference_filter,
    deduplicate,
    get_rejection_summary,
    preference_filters,
    work_preference_matches,
)
from opportunity_engine.models import DiscoveryPreferences, IncomeRange, IncomeTimeframe, RiskLevel


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def pool(make_opportunity):
    """A small pool spanning time, risk, income and location."""
    return [
        make_opportunity("writing", hours=(5, 10), barrier=RiskLevel.LOW, income=(1200, 2000), location="remote"),
        make_opportunity("agency", hours=(30, 40), barrier=RiskLevel.HIGH, income=(3000, 8000)),
        make_opportunity("tutoring", hours=(5, 15), barrier=RiskLevel.MEDIUM, income=(100, 300), location="local"),
        make_opportunity("course", hours=(10, 20), barrier=RiskLevel.MEDIUM, income=(500, 4000)),
    ]


def ids(opportunities):
    return [o.id for o in opportunities]


# ── Deduplication Tests ─────────────────────────────────────────────────────


class TestDeduplicate:
    def test_keeps_first_per_id(self, make_opportunity):
        """Later entries with the same id are dropped."""
        first = make_opportunity("a", title="First")
        unique, rejected = deduplicate([first, make_opportunity("a", title="Second"), make_opportunity("b")], set())
        assert ids(unique) == ["a", "b"]
        assert unique[0].title == "First"
        assert rejected[0].reason == RejectionReason.DUPLICATE

    def test_drops_previously_recommended(self, make_opportunity):
        """Ids in the user's history never come back."""
        unique, rejected = deduplicate([make_opportunity("a"), make_opportunity("b")], {"a"})
        assert ids(unique) == ["b"]
        assert rejected == [FilterResult(rejected[0].opportunity, False, RejectionReason.PREVIOUSLY_SEEN)]

    def test_generates_missing_ids(self, make_opportunity):
        """Opportunities without an id get a unique generated one."""
        unique, _ = deduplicate([make_opportunity(""), make_opportunity("")], set())
        assert len(unique) == 2
        assert all(o.id.startswith("generated-") for o in unique)
        assert unique[0].id != unique[1].id

    def test_empty(self):
        """Empty input gives empty output."""
        assert deduplicate([], {"a"}) == ([], [])


# ── Preference Filter Tests ─────────────────────────────────────────────────


class TestTimeFilter:
    def test_within_tolerance(self, pool):
        """Minimum hours up to 125% of availability pass."""
        passed, rejected = apply_time_filter(pool, 8)
        assert ids(passed) == ["writing", "tutoring", "course"]
        assert [r.reason for r in rejected] == [RejectionReason.TIME]

    def test_unknown_availability_keeps_all(self, pool):
        """Zero hours means availability was not given."""
        passed, rejected = apply_time_filter(pool, 0)
        assert len(passed) == 4
        assert rejected == []


class TestRiskFilter:
    def test_low_appetite_allows_one_step_up(self, pool):
        """A low-risk user still sees medium-barrier opportunities."""
        prefs = DiscoveryPreferences(user_id="u1", risk_appetite="low")
        passed, rejected = apply_risk_filter(pool, prefs)
        assert ids(passed) == ["writing", "tutoring", "course"]
        assert ids(r.opportunity for r in rejected) == ["agency"]

    def test_strict_steps(self, pool):
        """With zero steps only barriers at or below the appetite pass."""
        prefs = DiscoveryPreferences(user_id="u1", risk_appetite="low")
        passed, _ = apply_risk_filter(pool, prefs, max_steps=0)
        assert ids(passed) == ["writing"]

    def test_any_appetite(self, pool):
        """An appetite of 'any' disables the filter."""
        passed, _ = apply_risk_filter(pool, DiscoveryPreferences(user_id="u1"))
        assert len(passed) == 4


class TestIncomeFilter:
    def test_floor_is_fraction_of_goal(self, pool):
        """Minimum monthly income must reach 15% of the goal."""
        passed, rejected = apply_income_filter(pool, 2000)
        assert ids(passed) == ["writing", "agency", "course"]
        assert ids(r.opportunity for r in rejected) == ["tutoring"]

    def test_converts_to_monthly(self, make_opportunity):
        """Hourly rates are compared as monthly income."""
        hourly = make_opportunity("hourly")
        hourly.income = IncomeRange(10, 20, IncomeTimeframe.HOUR)
        passed, _ = apply_income_filter([hourly], 5000)
        assert ids(passed) == ["hourly"]

    def test_unset_goal(self, pool):
        """No goal keeps everything."""
        passed, _ = apply_income_filter(pool, 0)
        assert len(passed) == 4


class TestWorkPreference:
    @pytest.mark.parametrize("location, preference, expected", [
        ("remote", "remote", True),
        ("local", "remote", False),
        ("remote", "local", False),
        ("", "remote", True),
        ("both", "local", True),
        ("local", "both", True),
        ("local", "any", True),
    ])
    def test_matches(self, location, preference, expected):
        """Only an explicit remote/local mismatch is rejected."""
        assert work_preference_matches(location, preference) is expected

    def test_filter(self, pool):
        """Remote-only users lose local work."""
        passed, rejected = apply_work_preference_filter(pool, "remote")
        assert "tutoring" not in ids(passed)
        assert rejected[0].reason == RejectionReason.WORK_PREFERENCE


# ── Pipeline Tests ──────────────────────────────────────────────────────────


class TestPreferenceFilters:
    def test_all_filters_in_order(self, pool):
        """Each opportunity is rejected by the first filter it fails."""
        prefs = DiscoveryPreferences(
            user_id="u1",
            time_availability="10",
            risk_appetite="low",
            income_goal=2000,
            work_preference="remote",
        )
        passed, rejected = preference_filters(pool, prefs)

        assert ids(passed) == ["writing", "course"]
        assert get_rejection_summary(rejected) == {
            "REJECTED_TIME": 1,
            "REJECTED_INCOME": 1,
        }

    def test_custom_config(self, pool):
        """Thresholds come from the filter config."""
        prefs = DiscoveryPreferences(user_id="u1", time_availability="8")
        passed, _ = preference_filters(pool, prefs, FilterConfig(time_tolerance=1.0))
        assert ids(passed) == ["writing", "tutoring"]

    def test_summary_ignores_results_without_reason(self, make_opportunity):
        """Passed results do not count as rejections."""
        results = [
            FilterResult(make_opportunity("a"), True),
            FilterResult(make_opportunity("b"), False, RejectionReason.RISK),
        ]
        assert get_rejection_summary(results) == {"REJECTED_RISK": 1}
