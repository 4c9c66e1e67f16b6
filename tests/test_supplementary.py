"""Tests for the curated supplementary generator."""

from opportunity_engine.models import DiscoveryPreferences
from opportunity_engine.supplementary import SupplementaryGenerator, detect_skill_categories


def test_detect_skill_categories():
    assert detect_skill_categories(["Writing", "SEO"]) == ["writing", "marketing"]
    assert detect_skill_categories(["python"]) == ["programming"]
    assert detect_skill_categories(["cooking"]) == []


def test_small_category_set_is_padded_with_general():
    opportunities = SupplementaryGenerator().generate(DiscoveryPreferences(user_id="u1", skills=("writing",)))

    assert len(opportunities) == 5
    assert opportunities[0].title == "Freelance Blog Writing"
    assert all(o.source == "supplementary" for o in opportunities)
    assert opportunities[0].id.startswith("supp-")
    assert opportunities[0].id.endswith("-writing-1")
    assert opportunities[-1].id.endswith("-general-3")


def test_unknown_skills_get_general_set():
    opportunities = SupplementaryGenerator().generate(DiscoveryPreferences(user_id="u1", skills=("cooking",)))
    assert [o.id.split("-")[2] for o in opportunities] == ["general"] * 3


def test_many_categories_skip_general():
    prefs = DiscoveryPreferences(
        user_id="u1", skills=("writing", "design", "seo", "teaching", "python", "shopify")
    )
    opportunities = SupplementaryGenerator().generate(prefs)
    assert len(opportunities) == 12
    assert not any("-general-" in o.id for o in opportunities)
    assert len({o.id for o in opportunities}) == 12
