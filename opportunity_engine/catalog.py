"""Built-in opportunity listings loaded from data/catalog.yaml."""

from __future__ import annotations

import copy
import logging
import re
import time
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from opportunity_engine.models import RawOpportunity

logger = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).resolve().parent / "data" / "catalog.yaml"

_ID_SUFFIX = re.compile(r"-\d+-[0-9a-f]{6}$")


@lru_cache(maxsize=4)
def _read_catalog(path: str) -> dict:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_section(section: str, path: Path | str = CATALOG_PATH) -> Any:
    """Return a private copy of one catalog section (empty when missing)."""
    catalog = _read_catalog(str(path))
    if section not in catalog:
        logger.warning("Catalog section %r not found in %s", section, path)
        return []
    return copy.deepcopy(catalog[section])


def slugify(text: str, max_length: int = 40) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug[:max_length] or "item"


def make_opportunity_id(prefix: str, text: str) -> str:
    """Unique id of the form ``<prefix>-<slug>-<millis>-<nonce>``.

    The slug uses underscores so the prefix is always the first
    hyphen-separated fragment.
    """
    return f"{prefix}-{slugify(text)}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def listing_key(opportunity_id: str) -> str:
    """The stable ``<prefix>-<slug>`` part of an id.

    Two ids minted for the same listing at different times share this key.
    Ids without the time and nonce suffix are returned unchanged.
    """
    return _ID_SUFFIX.sub("", opportunity_id)


def matches_keywords(entry: dict, skills: list[str] | tuple[str, ...]) -> bool:
    """True when an entry has no keywords or one of them appears in a skill."""
    keywords = entry.get("keywords") or []
    if not keywords:
        return True
    lowered = [s.lower() for s in skills]
    return any(k.lower() in skill for k in keywords for skill in lowered)


def build_opportunity(entry: dict, opportunity_id: str, source: str, **overrides: Any) -> RawOpportunity:
    data = {k: v for k, v in entry.items() if k != "keywords"}
    data.update(overrides)
    data["id"] = opportunity_id
    data["source"] = source
    return RawOpportunity.from_dict(data)
