"""Category diversity for the final recommendation set.

Caps how many opportunities of one type make the cut. The cap is tight
(3 per type) when the pool spans many types and loose (5 per type) when it
only spans a few. When the capped set is short of the target size and the
pool has only a few types, the best leftovers are added back even though
they exceed the cap. The result is re-sorted and never longer than
``max_size``.
"""

from __future__ import annotations

import logging
from collections import Counter

from opportunity_engine.config import DiversityConfig
from opportunity_engine.models import RawOpportunity

logger = logging.getLogger(__name__)


def _score(opportunity: RawOpportunity) -> float:
    return opportunity.match_score or 0.0


def enforce_diversity(
    opportunities: list[RawOpportunity],
    config: DiversityConfig | None = None,
) -> list[RawOpportunity]:
    config = config or DiversityConfig()
    ranked = sorted(opportunities, key=_score, reverse=True)

    type_count = len({o.type for o in ranked})
    few_types = type_count <= config.few_types_threshold
    cap = config.few_types_cap if few_types else config.many_types_cap

    selected: list[RawOpportunity] = []
    leftovers: list[RawOpportunity] = []
    per_type: Counter = Counter()
    for opportunity in ranked:
        if per_type[opportunity.type] < cap:
            selected.append(opportunity)
            per_type[opportunity.type] += 1
        else:
            leftovers.append(opportunity)

    if few_types and len(selected) < config.target_size:
        needed = config.target_size - len(selected)
        selected.extend(leftovers[:needed])

    result = sorted(selected, key=_score, reverse=True)[: config.max_size]
    logger.info(
        "Diversity: %d -> %d opportunities across %d types (cap %d)",
        len(opportunities), len(result), type_count, cap,
    )
    return result
