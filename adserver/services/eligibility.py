"""Eligibility filter: which campaigns may be served right now.

A campaign is eligible for a placement at ``now`` when:
1. status is active and the is_active gate is on
2. placement matches exactly
3. start_at is unset or <= now, end_at is unset or >= now
4. max_impressions is unset or impressions < max_impressions
5. max_clicks is unset or clicks < max_clicks
6. for each segmentation dimension the caller supplies, the campaign has no
   rows for that dimension (wildcard) or has a row for the supplied id
7. it is not a fallback campaign

Everything is expressed as one SELECT; the filter never writes.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import ColumnElement, and_, exists, or_, select
from sqlalchemy.orm import Session

from adserver.models.db import Campaign, CampaignSegment
from adserver.models.db.enums import CampaignStatus, Placement, SegmentDimension
from adserver.models.segmentation import SegmentationQuery
from adserver.utils.time import utc_now


def _segment_clause(dimension: SegmentDimension, target_id: str) -> ColumnElement[bool]:
    has_dimension = exists().where(
        CampaignSegment.campaign_id == Campaign.id,
        CampaignSegment.dimension == dimension,
    )
    has_target = exists().where(
        CampaignSegment.campaign_id == Campaign.id,
        CampaignSegment.dimension == dimension,
        CampaignSegment.target_id == target_id,
    )
    return or_(~has_dimension, has_target)


def serving_conditions(now: datetime) -> list[ColumnElement[bool]]:
    """Status, gate, window and cap predicates shared with admin listing."""
    return [
        Campaign.status == CampaignStatus.ACTIVE,
        Campaign.is_active.is_(True),
        or_(Campaign.start_at.is_(None), Campaign.start_at <= now),
        or_(Campaign.end_at.is_(None), Campaign.end_at >= now),
        or_(Campaign.max_impressions.is_(None), Campaign.impressions < Campaign.max_impressions),
        or_(Campaign.max_clicks.is_(None), Campaign.clicks < Campaign.max_clicks),
    ]


def eligible_campaigns(
    session: Session,
    placement: Placement,
    now: Optional[datetime] = None,
    segmentation: SegmentationQuery = SegmentationQuery(),
) -> list[Campaign]:
    """Eligible non-fallback campaigns, newest first (ties by id descending)."""
    now = now or utc_now()
    conditions = serving_conditions(now)
    conditions.append(Campaign.placement == Placement(placement))
    conditions.append(Campaign.is_fallback.is_(False))
    for dimension, target_id in segmentation.supplied():
        conditions.append(_segment_clause(dimension, target_id))
    stmt = (
        select(Campaign)
        .where(and_(*conditions))
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
    )
    return list(session.scalars(stmt))


def fallback_campaigns(session: Session, placement: Placement, limit: int) -> list[Campaign]:
    """Active fallback campaigns for a placement. No window, cap or segmentation filtering."""
    stmt = (
        select(Campaign)
        .where(
            Campaign.is_fallback.is_(True),
            Campaign.is_active.is_(True),
            Campaign.placement == Placement(placement),
        )
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt))


__all__ = ["eligible_campaigns", "fallback_campaigns", "serving_conditions"]
