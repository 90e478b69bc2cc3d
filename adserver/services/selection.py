"""Selection engine: pick which eligible campaigns to serve.

Strategies:
* ``all``      first N candidates in their natural (newest first) order
* ``random``   uniform permutation truncated to N
* ``weighted`` N draws without replacement, each proportional to max(0, weight)

Weighted draws stop early once the remaining pool has no positive weight, so
a zero-weight campaign is never picked by that strategy.

Fallback campaigns are an all-or-nothing substitute: they are consulted only
when the primary selection is empty and are never mixed with primary picks.
"""
from __future__ import annotations

import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from adserver.models.db import Campaign
from adserver.models.db.enums import Placement, SelectionStrategy
from adserver.models.segmentation import SegmentationQuery
from adserver.services.eligibility import eligible_campaigns, fallback_campaigns
from adserver.utils import get_logger, log_performance

logger = get_logger(__name__)

_system_random = random.SystemRandom()


@dataclass
class ServeResult:
    campaigns: list[Campaign]
    used_fallback: bool = False
    eligible_count: int = 0


def _weighted(candidates: Sequence[Campaign], limit: int, rng: random.Random) -> list[Campaign]:
    pool = list(candidates)
    picks: list[Campaign] = []
    while pool and len(picks) < limit:
        total = sum(max(0.0, c.weight or 0.0) for c in pool)
        if total <= 0:
            break
        r = rng.random() * total
        chosen = len(pool) - 1
        for index, candidate in enumerate(pool):
            weight = max(0.0, candidate.weight or 0.0)
            if weight <= 0:
                continue
            r -= weight
            if r <= 0:
                chosen = index
                break
        # Float drift can leave r marginally positive after the last candidate;
        # the pick then belongs to the last positive-weight entry.
        if r > 0:
            chosen = max(i for i, c in enumerate(pool) if (c.weight or 0.0) > 0)
        picks.append(pool.pop(chosen))
    return picks


def select_campaigns(
    candidates: Sequence[Campaign],
    limit: int,
    strategy: SelectionStrategy = SelectionStrategy.WEIGHTED,
    rng: Optional[random.Random] = None,
) -> list[Campaign]:
    if limit <= 0 or not candidates:
        return []
    rng = rng or _system_random
    strategy = SelectionStrategy(strategy)
    if strategy == SelectionStrategy.ALL:
        return list(candidates[:limit])
    if strategy == SelectionStrategy.RANDOM:
        shuffled = list(candidates)
        rng.shuffle(shuffled)
        return shuffled[:limit]
    return _weighted(candidates, limit, rng)


def serve_campaigns(
    session: Session,
    placement: Placement,
    *,
    now: Optional[datetime] = None,
    segmentation: SegmentationQuery = SegmentationQuery(),
    limit: int = 1,
    strategy: SelectionStrategy = SelectionStrategy.WEIGHTED,
    include_fallback: bool = True,
    rng: Optional[random.Random] = None,
) -> ServeResult:
    """Eligibility, then selection, then the fallback policy."""
    started = time.perf_counter()
    eligible = eligible_campaigns(session, placement, now, segmentation)
    picks = select_campaigns(eligible, limit, strategy, rng)
    result = ServeResult(campaigns=picks, eligible_count=len(eligible))
    if not picks and include_fallback:
        result.campaigns = fallback_campaigns(session, placement, limit)
        result.used_fallback = bool(result.campaigns)
    duration_ms = (time.perf_counter() - started) * 1000
    log_performance(
        "serve_campaigns",
        duration_ms,
        {
            "placement": Placement(placement).value,
            "strategy": SelectionStrategy(strategy).value,
            "eligible": result.eligible_count,
            "served": len(result.campaigns),
            "fallback": result.used_fallback,
        },
    )
    return result


__all__ = ["ServeResult", "select_campaigns", "serve_campaigns"]
