"""Tests for configuration loading."""

import tempfile

import yaml

from opportunity_engine.config import EngineConfig, load_config


def test_load_default_config():
    """Loading the project's config.yaml should work."""
    config = load_config()
    assert isinstance(config, EngineConfig)
    assert {s.source_type for s in config.sources} == {"marketplace", "digital_products", "newsletter"}
    assert config.source_timeout_seconds == 30


def test_source_names_have_no_hyphens():
    """Source names are id prefixes, so they cannot contain '-'."""
    for source in load_config().sources:
        assert "-" not in source.name


def test_load_missing_file():
    """Missing config file returns defaults."""
    config = load_config("/nonexistent/path.yaml")
    assert isinstance(config, EngineConfig)
    assert config.sources == []
    assert config.cache_ttl_minutes == 30
    assert config.diversity.many_types_cap == 3


def test_enabled_sources_filter():
    """Only enabled sources are returned by enabled_sources."""
    config = load_config()
    config.sources[0].enabled = False
    assert config.sources[0] not in config.enabled_sources


def test_custom_config():
    """A custom config should parse nested sections and keep defaults elsewhere."""
    data = {
        "log_level": "DEBUG",
        "source_timeout_seconds": 5,
        "sources": [
            {
                "name": "fiverr",
                "source_type": "marketplace",
                "url": "https://api.example.com/gigs",
                "params": {"max_results": 3},
            }
        ],
        "scoring": {"ml_weights": {"skill_match": 5.0}, "classic": {"skill": 0.5}},
        "filters": {"time_tolerance": 1.5},
        "ai": {"enabled": False},
    }

    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
        config = load_config(f.name)

    assert config.log_level == "DEBUG"
    assert config.source_timeout_seconds == 5
    assert config.sources[0].name == "fiverr"
    assert config.sources[0].enabled is True
    assert config.sources[0].params["max_results"] == 3
    assert config.scoring.ml_weights["skill_match"] == 5.0
    assert config.scoring.ml_weights["income_match"] == 1.5
    assert config.scoring.classic.skill == 0.5
    assert config.scoring.classic.income == 0.20
    assert config.filters.time_tolerance == 1.5
    assert config.filters.risk_steps == 1
    assert config.ai.enabled is False


def test_unknown_keys_are_ignored():
    data = {"diversity": {"target_size": 10, "bogus": 1}}
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
        config = load_config(f.name)
    assert config.diversity.target_size == 10
