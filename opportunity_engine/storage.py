"""JSON-file persistence for users, discovery results and interactions.

Manages four data files under ``data_dir``:

1. **Users** (`users.json`)
   - JSON object {user_id: {user_id, username, skills, discoverable}}

2. **Discovery results** (`discovery_results.json`)
   - JSON array, one record per discovery request, holding the full
     serialized opportunities and the preferences that produced them

3. **Interactions** (`interactions.json`)
   - JSON array of {user_id, opportunity_id, action, type, at} records;
     action is "view" or "save"

4. **Discovery log** (`discovery_log.jsonl`)
   - Append-only log of every opportunity ever recommended, JSON Lines

All JSON writes use the atomic write pattern:
  1. Write to .tmp file
  2. fsync
  3. Rename to target (atomic on POSIX)

Before each write, a .bak backup is created. If the primary file is
corrupted, it's restored from .bak automatically. Read-modify-write cycles
are serialized with a lock.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from opportunity_engine.models import (
    DiscoveryPreferences,
    RawOpportunity,
    UserHistory,
    UserProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"

INTERACTION_ACTIONS = ("view", "save")


class DiscoveryStore:
    def __init__(self, data_dir: str | Path = DEFAULT_DATA_DIR):
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    @property
    def users_path(self) -> Path:
        return self.data_dir / "users.json"

    @property
    def results_path(self) -> Path:
        return self.data_dir / "discovery_results.json"

    @property
    def interactions_path(self) -> Path:
        return self.data_dir / "interactions.json"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "discovery_log.jsonl"

    # ── Initialization ─────────────────────────────────────────────────────

    def init_store(self) -> None:
        """Ensure the data directory and files exist. Safe to call repeatedly."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            for path, empty in (
                (self.users_path, {}),
                (self.results_path, []),
                (self.interactions_path, []),
            ):
                if not path.exists():
                    _atomic_write_json(path, empty)
                    logger.info("Created %s", path)
            if not self.log_path.exists():
                self.log_path.touch()
                logger.info("Created %s", self.log_path)

    # ── Users ──────────────────────────────────────────────────────────────

    def upsert_user(self, profile: UserProfile) -> None:
        with self._lock:
            users = _safe_read_json(self.users_path, default={})
            users[profile.user_id] = {
                "user_id": profile.user_id,
                "username": profile.username,
                "skills": list(profile.skills),
                "discoverable": profile.discoverable,
            }
            _backup_and_write(self.users_path, users)
        logger.info("Saved user %s", profile.user_id)

    def get_user(self, user_id: str) -> UserProfile | None:
        users = _safe_read_json(self.users_path, default={})
        record = users.get(user_id)
        return _profile(record) if record else None

    def list_users(self, limit: int | None = None, discoverable_only: bool = False) -> list[UserProfile]:
        users = _safe_read_json(self.users_path, default={})
        profiles = [_profile(r) for r in users.values()]
        if discoverable_only:
            profiles = [p for p in profiles if p.discoverable]
        return profiles[:limit] if limit is not None else profiles

    # ── Discovery results ──────────────────────────────────────────────────

    def save_discovery_result(
        self,
        user_id: str,
        opportunities: list[RawOpportunity],
        preferences: DiscoveryPreferences,
        request_id: str,
    ) -> None:
        """Persist one discovery response and append it to the discovery log."""
        now = datetime.now(timezone.utc).isoformat()
        record = {
            "id": str(uuid.uuid4()),
            "request_id": request_id,
            "user_id": user_id,
            "created_at": now,
            "preferences": preferences.to_dict(),
            "opportunities": [o.to_dict() for o in opportunities],
        }
        with self._lock:
            results = _safe_read_json(self.results_path, default=[])
            results.append(record)
            _backup_and_write(self.results_path, results)
            self._append_log(opportunities, user_id, request_id, now)
        logger.info("Saved %d opportunities for %s (request_id=%s)", len(opportunities), user_id, request_id)

    def load_discovery_results(self, user_id: str | None = None) -> list[dict]:
        results = _safe_read_json(self.results_path, default=[])
        if user_id is None:
            return results
        return [r for r in results if r.get("user_id") == user_id]

    def load_previous_opportunity_ids(self, user_id: str) -> set[str]:
        """Ids of every opportunity already recommended to this user."""
        ids: set[str] = set()
        for record in self.load_discovery_results(user_id):
            for opportunity in record.get("opportunities", []):
                if opportunity.get("id"):
                    ids.add(opportunity["id"])
        return ids

    def find_opportunity(self, opportunity_id: str) -> RawOpportunity | None:
        """Most recent persisted copy of an opportunity, or None."""
        for record in reversed(self.load_discovery_results()):
            for opportunity in record.get("opportunities", []):
                if opportunity.get("id") == opportunity_id:
                    return RawOpportunity.from_dict(opportunity)
        return None

    def _append_log(self, opportunities: list[RawOpportunity], user_id: str, request_id: str, recorded_at: str) -> None:
        with open(self.log_path, "a") as f:
            for opportunity in opportunities:
                entry = {
                    "request_id": request_id,
                    "user_id": user_id,
                    "recorded_at": recorded_at,
                    "id": opportunity.id,
                    "title": opportunity.title,
                    "source": opportunity.source,
                    "type": opportunity.type.value,
                    "match_score": opportunity.match_score,
                }
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        logger.debug("Appended %d entries to discovery log (request_id=%s)", len(opportunities), request_id)

    # ── Interactions ───────────────────────────────────────────────────────

    def record_interaction(
        self,
        user_id: str,
        opportunity_id: str,
        action: str,
        opportunity_type: str = "",
    ) -> None:
        if action not in INTERACTION_ACTIONS:
            raise ValueError(f"Unknown interaction {action!r}, expected one of {INTERACTION_ACTIONS}")
        with self._lock:
            interactions = _safe_read_json(self.interactions_path, default=[])
            interactions.append({
                "user_id": user_id,
                "opportunity_id": opportunity_id,
                "action": action,
                "type": opportunity_type,
                "at": datetime.now(timezone.utc).isoformat(),
            })
            _backup_and_write(self.interactions_path, interactions)

    def saved_opportunity_ids(self, user_id: str) -> set[str]:
        interactions = _safe_read_json(self.interactions_path, default=[])
        return {
            i["opportunity_id"] for i in interactions
            if i.get("user_id") == user_id and i.get("action") == "save"
        }

    def load_user_history(self, user_id: str) -> UserHistory:
        """The user's saves and views, plus community popularity per opportunity.

        Popularity is engagement (saves count double) across all users,
        normalized so the most engaged opportunity scores 1.0.
        """
        interactions = _safe_read_json(self.interactions_path, default=[])
        history = UserHistory()
        engagement: Counter = Counter()

        for item in interactions:
            opportunity_id = item.get("opportunity_id")
            action = item.get("action")
            if not opportunity_id:
                continue
            engagement[opportunity_id] += 2 if action == "save" else 1

            if item.get("user_id") != user_id:
                continue
            if action == "save":
                history.saved_ids.add(opportunity_id)
                if item.get("type"):
                    history.saved_types[item["type"]] = history.saved_types.get(item["type"], 0) + 1
            elif action == "view":
                history.view_counts[opportunity_id] = history.view_counts.get(opportunity_id, 0) + 1

        if engagement:
            top = max(engagement.values())
            history.popularity = {k: v / top for k, v in engagement.items()}
        return history


def _profile(record: dict) -> UserProfile:
    return UserProfile(
        user_id=record["user_id"],
        username=record.get("username", ""),
        skills=list(record.get("skills", [])),
        discoverable=bool(record.get("discoverable", False)),
    )


# ── Internal Helpers ───────────────────────────────────────────────────────

def _safe_read_json(path: Path, default: Any = None) -> Any:
    """Read a JSON file, restoring from .bak if corrupted.

    If the primary file can't be parsed, tries .bak. If both fail,
    returns the default value and logs an error.
    """
    if not path.exists():
        return default if default is not None else {}

    try:
        with open(path, "r") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s: %s, trying backup", path, exc)

    bak_path = path.with_suffix(path.suffix + ".bak")
    if bak_path.exists():
        try:
            with open(bak_path, "r") as f:
                data = json.load(f)
            logger.info("Restored %s from backup", path)
            _atomic_write_json(path, data)
            return data
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Backup %s also corrupted: %s", bak_path, exc)

    logger.error("Could not read %s or its backup, using default", path)
    return default if default is not None else {}


def _backup_and_write(path: Path, data: Any) -> None:
    """Create a .bak backup of the current file, then atomically write new data."""
    if path.exists():
        bak_path = path.with_suffix(path.suffix + ".bak")
        try:
            shutil.copy2(path, bak_path)
        except OSError as exc:
            logger.warning("Failed to create backup of %s: %s", path, exc)

    _atomic_write_json(path, data)


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON data atomically using temp file + rename."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        tmp_path.rename(path)
    except OSError as exc:
        logger.error("Failed to write %s: %s", path, exc)
        if tmp_path.exists():
            tmp_path.unlink()
        raise
