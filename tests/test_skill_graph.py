"""Tests for the skill graph and the per-opportunity skill gap analyzer."""

import threading

import pytest

from opportunity_engine.market_data import MarketDataService
from opportunity_engine.scoring import roi_score
from opportunity_engine.skill_gap import SkillGapAnalyzer
from opportunity_engine.skill_graph import BoundedEstimator, SkillGraph


@pytest.fixture
def graph() -> SkillGraph:
    return SkillGraph()


# ── Matching ────────────────────────────────────────────────────────────────


def test_match_skill_exact_substring_and_word(graph):
    assert graph.match_skill("Content Writing") == "content_writing"
    assert graph.match_skill("web javascript") == "javascript"
    assert graph.match_skill("personal trainer") == "personal_training"
    assert graph.match_skill("underwater welding") is None
    assert graph.match_skill("  ") is None


def test_find_skill_matches_in_text(graph):
    text = "You will need solid HTML and CSS plus some copywriting."
    assert set(graph.find_skill_matches(text)) >= {"html", "css", "copywriting"}


# ── Gap calculation ─────────────────────────────────────────────────────────


def test_gap_includes_unheld_prerequisites(graph):
    """JavaScript needs CSS which needs HTML: 3 + 14 + 30 days."""
    result = graph.calculate_skill_gap_days(["JavaScript"], [], [])
    assert result.days == 47
    assert [item.node_id for item in result.breakdown] == ["html", "css", "javascript"]
    assert [item.kind for item in result.breakdown] == ["prerequisite", "prerequisite", "required"]


def test_gap_shrinks_as_skills_are_added(graph):
    """Adding a held skill never increases the gap."""
    previous = None
    for skills in ([], ["html"], ["html", "css"], ["html", "css", "javascript"]):
        days = graph.calculate_skill_gap_days(["javascript"], ["copywriting"], skills).days
        if previous is not None:
            assert days <= previous
        previous = days
    assert previous == 10  # only the nice-to-have copywriting remains


def test_gap_is_zero_when_all_skills_held(graph):
    result = graph.calculate_skill_gap_days(["JavaScript", "CSS"], ["html"], ["javascript", "css", "HTML"])
    assert result.days == 0
    assert result.breakdown == []
    assert not result.used_fallback


def test_related_skill_counts_as_held(graph):
    """A writer is not asked to learn content writing from scratch."""
    assert graph.calculate_skill_gap_days(["Content Writing"], [], ["writing"]).days == 0


def test_nice_to_have_weighted_and_not_double_counted(graph):
    assert graph.calculate_skill_gap_days([], ["copywriting"], []).days == 10  # 14 * 0.7

    # html is already counted as a prerequisite of javascript
    assert graph.calculate_skill_gap_days(["javascript"], ["html"], []).days == 47

    # css listed as both required and nice-to-have counts once, at full weight
    assert graph.calculate_skill_gap_days(["css"], ["css"], []).days == 17


def test_gap_is_capped(graph):
    result = graph.calculate_skill_gap_days(["acting", "graphic design", "personal training"], [], [])
    assert result.days == 90


def test_fallback_for_unknown_skills_is_bounded_and_seeded(graph):
    estimator = BoundedEstimator(seed=42)
    result = graph.calculate_skill_gap_days(["underwater welding"], ["ancient pottery"], [], estimator)
    assert result.used_fallback
    required, nice = result.breakdown
    assert 7 <= required.days <= 21
    assert 3 <= nice.days <= 7
    assert result.days == required.days + nice.days

    again = graph.calculate_skill_gap_days(["underwater welding"], ["ancient pottery"], [], BoundedEstimator(42))
    assert again.days == result.days


def test_no_fallback_when_anything_matched(graph):
    result = graph.calculate_skill_gap_days(["underwater welding", "css"], [], [])
    assert not result.used_fallback
    assert result.days == 17
    assert result.missing_required == ["underwater welding", "css"]


# ── Learning time ───────────────────────────────────────────────────────────


def test_estimate_without_observations_uses_complexity(graph):
    assert graph.estimate_learning_days("javascript") == (30.0, 0.5)


def test_record_learning_time_blends_observations(graph):
    graph.record_learning_time("html", 10)
    days, confidence = graph.estimate_learning_days("html")
    assert days == pytest.approx(3 * 0.99 + 10 * 0.01)
    assert confidence == pytest.approx(0.505)


def test_record_learning_time_rejects_bad_input(graph):
    with pytest.raises(KeyError):
        graph.record_learning_time("basket_weaving", 5)
    with pytest.raises(ValueError):
        graph.record_learning_time("html", -1)


def test_concurrent_recording_loses_no_samples(graph):
    def worker():
        for _ in range(250):
            graph.record_learning_time("css", 7)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    node = graph.get("css")
    assert node.sample_count == 1000
    assert node.observed_average_days == pytest.approx(7)


# ── Analyzer ────────────────────────────────────────────────────────────────


def test_analyzer_report(graph, make_opportunity):
    analyzer = SkillGapAnalyzer(graph, BoundedEstimator(1))
    opp = make_opportunity(required_skills=["JavaScript"], nice_to_have_skills=["copywriting"])

    report = analyzer.analyze(opp, ["html"])

    assert report.total_days == 54  # css 14 + javascript 30 + copywriting 9.8
    assert report.missing_required == ["JavaScript"]
    assert report.missing_nice_to_have == ["copywriting"]
    assert {r["skill"] for r in report.resources} == {"CSS", "JavaScript", "Copywriting"}
    assert report.confidence == 0.5
    assert not report.used_fallback


def test_analyzer_confidence_extremes(graph, make_opportunity):
    analyzer = SkillGapAnalyzer(graph)
    unknown = make_opportunity(required_skills=["underwater welding"])
    assert analyzer.analyze(unknown, []).confidence == 0.3

    held = make_opportunity(required_skills=["css"])
    report = analyzer.analyze(held, ["css"])
    assert report.total_days == 0
    assert report.confidence == 0.9


def test_annotate_sets_gap_and_revenue_window(graph, make_opportunity):
    analyzer = SkillGapAnalyzer(graph, market_data=MarketDataService())
    opps = [
        make_opportunity("a-1", required_skills=["acting"], category="acting"),
        make_opportunity("a-2", required_skills=["css"], category="web_development", platform="Upwork"),
    ]

    assert analyzer.annotate(opps, ["css"]) == 2
    assert opps[0].skill_gap_days == 45
    assert opps[0].skill_gap_analysis.total_days == 45
    assert opps[0].time_to_first_revenue == "1-2 months"
    assert opps[1].skill_gap_days == 0
    assert opps[1].time_to_first_revenue == "2-3 weeks"


def test_annotate_recomputes_roi_with_gap(graph, make_opportunity):
    market = MarketDataService()
    analyzer = SkillGapAnalyzer(graph, market_data=market)
    opportunity = make_opportunity("a-1", required_skills=["acting"], category="acting")
    opportunity.roi_score = roi_score(opportunity, market)
    ungapped = opportunity.roi_score

    analyzer.annotate([opportunity], ["css"])

    assert opportunity.skill_gap_days == 45
    assert opportunity.roi_score == roi_score(opportunity, market)
    assert opportunity.roi_score < ungapped
