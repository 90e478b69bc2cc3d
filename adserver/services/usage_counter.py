"""Impression and click counting with optional caps.

The increment is a single conditional UPDATE, so concurrent trackers can never
jointly push a counter past its cap. A missing campaign or a reached cap is a
soft refusal, not an error.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from adserver.models.db.enums import UsageKind
from adserver.services.campaign_store import CampaignStore
from adserver.utils import get_logger

logger = get_logger(__name__)

RECORDED = "recorded"
CAP_REACHED = "cap_reached"
NOT_FOUND = "not_found"


@dataclass(frozen=True)
class TrackResult:
    accepted: bool
    reason: str


def record_usage(session: Session, campaign_id: int, kind: UsageKind) -> TrackResult:
    store = CampaignStore(session)
    kind = UsageKind(kind)
    try:
        applied = store.increment_if_below_cap(campaign_id, kind)
        store.commit()
    except Exception:
        store.rollback()
        raise
    if applied:
        return TrackResult(True, RECORDED)
    # The write matched nothing: tell apart a missing id from a reached cap
    if store.get(campaign_id) is None:
        logger.debug("Track for unknown campaign", campaign_id=campaign_id, kind=kind.value)
        return TrackResult(False, NOT_FOUND)
    logger.info("Tracking cap reached", campaign_id=campaign_id, kind=kind.value)
    return TrackResult(False, CAP_REACHED)


__all__ = ["TrackResult", "record_usage", "RECORDED", "CAP_REACHED", "NOT_FOUND"]
