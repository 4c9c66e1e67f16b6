"""Tests for the opportunity data models."""

from dataclasses import FrozenInstanceError

import pytest

from opportunity_engine.models import (
    DiscoveryPreferences,
    IncomeRange,
    IncomeTimeframe,
    OpportunityType,
    RawOpportunity,
    RiskLevel,
    SkillGapReport,
    SkillGapItem,
    UserHistory,
    parse_time_availability,
)


def test_income_range_monthly_conversion():
    hourly = IncomeRange(20, 50, IncomeTimeframe.HOUR)
    assert hourly.monthly_min == 3200
    assert hourly.monthly_max == 8000

    yearly = IncomeRange(12000, 24000, IncomeTimeframe.YEAR)
    assert yearly.monthly_min == pytest.approx(1000)

    project = IncomeRange(300, 600, IncomeTimeframe.PROJECT)
    assert project.monthly_average == pytest.approx(150)


def test_timeframe_parse_accepts_loose_text():
    assert IncomeTimeframe.parse("hourly") == IncomeTimeframe.HOUR
    assert IncomeTimeframe.parse("per month") == IncomeTimeframe.MONTH
    assert IncomeTimeframe.parse("annual") == IncomeTimeframe.YEAR
    assert IncomeTimeframe.parse(None) == IncomeTimeframe.MONTH


def test_type_and_risk_parsing():
    assert OpportunityType.parse("digital product") == OpportunityType.DIGITAL_PRODUCT
    assert OpportunityType.parse("info-product") == OpportunityType.INFO_PRODUCT
    assert OpportunityType.parse("nonsense") is None
    assert RiskLevel.parse("Medium") == RiskLevel.MEDIUM
    assert RiskLevel.parse("any") is None
    assert [r.rank for r in RiskLevel] == [1, 2, 3]


@pytest.mark.parametrize(
    "text, hours",
    [
        ("full-time", 40),
        ("part time", 20),
        ("evenings", 10),
        ("weekends only", 16),
        ("15 hours", 15),
        ("sometimes", 0),
        ("", 0),
    ],
)
def test_parse_time_availability(text, hours):
    assert parse_time_availability(text) == hours


def test_preferences_any_means_unconstrained():
    prefs = DiscoveryPreferences(user_id="u1", skills=("writing", " ", "editing "))
    assert prefs.skills == ("writing", "editing")
    assert prefs.available_hours == 0
    assert prefs.risk_level is None


def test_preferences_are_frozen():
    prefs = DiscoveryPreferences(user_id="u1")
    with pytest.raises(FrozenInstanceError):
        prefs.income_goal = 100


def test_opportunity_id_is_immutable(make_opportunity):
    opp = make_opportunity("upwork-a")
    opp.id = "upwork-a"  # same value is fine
    with pytest.raises(AttributeError):
        opp.id = "upwork-b"


def test_opportunity_id_can_be_assigned_once():
    opp = RawOpportunity(id="", source="test", title="No id yet")
    opp.id = "generated-1"
    assert opp.id == "generated-1"


def test_copy_is_independent(make_opportunity):
    opp = make_opportunity(required_skills=["writing"])
    clone = opp.copy()
    clone.required_skills.append("editing")
    clone.match_score = 0.9
    assert opp.required_skills == ["writing"]
    assert opp.match_score is None


def test_to_dict_and_back(make_opportunity):
    opp = make_opportunity(
        "gumroad-template-1",
        type=OpportunityType.DIGITAL_PRODUCT,
        required_skills=["design"],
    )
    opp.skill_gap_analysis = SkillGapReport(
        total_days=12,
        breakdown=[SkillGapItem("design", 12.0, "required", "graphic_design")],
    )
    d = opp.to_dict()
    assert d["type"] == "DIGITAL_PRODUCT"
    assert d["entry_barrier"] == "LOW"
    assert d["income"]["timeframe"] == "month"

    restored = RawOpportunity.from_dict(d)
    assert restored.id == opp.id
    assert restored.type == OpportunityType.DIGITAL_PRODUCT
    assert restored.skill_gap_analysis.breakdown[0].node_id == "graphic_design"


def test_from_dict_tolerates_missing_fields():
    opp = RawOpportunity.from_dict({"id": "x-1", "type": "weird", "entry_barrier": "extreme"})
    assert opp.title == "Untitled Opportunity"
    assert opp.type == OpportunityType.FREELANCE
    assert opp.entry_barrier == RiskLevel.MEDIUM


def test_user_history_saved_share():
    history = UserHistory(saved_types={"CONTENT": 3, "FREELANCE": 1})
    assert history.total_saved == 4
    assert history.saved_share(OpportunityType.CONTENT) == 0.75
    assert UserHistory().saved_share(OpportunityType.CONTENT) == 0.0
