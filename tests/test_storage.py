"""Tests for JSON-file persistence.

Tests cover:
- Store initialization
- Users (upsert, lookup, discoverable listing)
- Discovery results and the discovery log
- Interactions and user history
- Backup restore on corruption
"""

import json

import pytest

from opportunity_engine.models import DiscoveryPreferences, UserProfile
from opportunity_engine.storage import DiscoveryStore


@pytest.fixture
def store(tmp_path) -> DiscoveryStore:
    s = DiscoveryStore(tmp_path / "data")
    s.init_store()
    return s


@pytest.fixture
def prefs() -> DiscoveryPreferences:
    return DiscoveryPreferences(user_id="u1", skills=("writing",))


class TestInit:
    def test_creates_files(self, store):
        """All data files exist after init."""
        assert json.loads(store.users_path.read_text()) == {}
        assert json.loads(store.results_path.read_text()) == []
        assert json.loads(store.interactions_path.read_text()) == []
        assert store.log_path.exists()

    def test_idempotent(self, store):
        """Init never overwrites existing data."""
        store.upsert_user(UserProfile("u1", "ann"))
        store.init_store()
        assert store.get_user("u1") is not None


class TestUsers:
    def test_upsert_and_get(self, store):
        """Users round-trip through the users file."""
        store.upsert_user(UserProfile("u1", "ann", ["writing"], discoverable=True))
        store.upsert_user(UserProfile("u1", "ann", ["writing", "editing"], discoverable=True))

        user = store.get_user("u1")
        assert user.skills == ["writing", "editing"]
        assert store.get_user("nobody") is None

    def test_list_discoverable(self, store):
        """Only discoverable users are listed when asked, up to the limit."""
        store.upsert_user(UserProfile("u1", "ann", discoverable=True))
        store.upsert_user(UserProfile("u2", "bob"))
        store.upsert_user(UserProfile("u3", "cat", discoverable=True))

        assert [u.user_id for u in store.list_users(discoverable_only=True)] == ["u1", "u3"]
        assert len(store.list_users(limit=2)) == 2


class TestDiscoveryResults:
    def test_save_and_reload(self, store, prefs, make_opportunity):
        """Saved results keep the full opportunities and feed the seen-ids set."""
        opportunity = make_opportunity("upwork-a", required_skills=["writing"])
        opportunity.match_score = 0.8
        store.save_discovery_result("u1", [opportunity, make_opportunity("upwork-b")], prefs, "req-1")

        records = store.load_discovery_results("u1")
        assert len(records) == 1
        assert records[0]["request_id"] == "req-1"
        assert records[0]["preferences"]["skills"] == ["writing"]
        assert store.load_previous_opportunity_ids("u1") == {"upwork-a", "upwork-b"}
        assert store.load_previous_opportunity_ids("u2") == set()

        found = store.find_opportunity("upwork-a")
        assert found.match_score == 0.8
        assert found.required_skills == ["writing"]
        assert store.find_opportunity("missing") is None

    def test_find_returns_newest_copy(self, store, prefs, make_opportunity):
        store.save_discovery_result("u1", [make_opportunity("x", title="Old")], prefs, "req-1")
        store.save_discovery_result("u2", [make_opportunity("x", title="New")], prefs, "req-2")
        assert store.find_opportunity("x").title == "New"

    def test_appends_to_log(self, store, prefs, make_opportunity):
        """Every recommended opportunity gets one JSON line."""
        store.save_discovery_result("u1", [make_opportunity("a"), make_opportunity("b")], prefs, "req-1")
        store.save_discovery_result("u1", [make_opportunity("c")], prefs, "req-2")

        lines = [json.loads(line) for line in store.log_path.read_text().splitlines()]
        assert [entry["id"] for entry in lines] == ["a", "b", "c"]
        assert lines[2]["request_id"] == "req-2"
        assert lines[0]["type"] == "FREELANCE"


class TestInteractions:
    def test_history(self, store):
        """Saves, views and community popularity are aggregated per user."""
        store.record_interaction("u1", "a", "save", "CONTENT")
        store.record_interaction("u1", "b", "view", "FREELANCE")
        store.record_interaction("u1", "b", "view", "FREELANCE")
        store.record_interaction("u2", "a", "save", "CONTENT")

        history = store.load_user_history("u1")
        assert history.saved_ids == {"a"}
        assert history.saved_types == {"CONTENT": 1}
        assert history.view_counts == {"b": 2}
        assert history.popularity == {"a": 1.0, "b": 0.5}
        assert store.saved_opportunity_ids("u2") == {"a"}

    def test_unknown_action(self, store):
        with pytest.raises(ValueError):
            store.record_interaction("u1", "a", "like")

    def test_empty_history(self, store):
        history = store.load_user_history("u1")
        assert history.total_saved == 0
        assert history.popularity == {}


class TestBackupRestore:
    def test_corrupted_file_restored_from_backup(self, store):
        """A corrupted users file is restored from its .bak copy."""
        store.upsert_user(UserProfile("u1", "ann"))
        store.upsert_user(UserProfile("u2", "bob"))  # .bak now holds u1
        store.users_path.write_text("{not json")

        assert store.get_user("u1") is not None
        assert store.get_user("u2") is None
        assert json.loads(store.users_path.read_text()) == json.loads(
            store.users_path.with_suffix(".json.bak").read_text()
        )

    def test_corrupted_without_backup_uses_default(self, tmp_path):
        s = DiscoveryStore(tmp_path)
        s.results_path.write_text("[broken")
        assert s.load_discovery_results() == []
