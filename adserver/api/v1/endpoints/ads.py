"""
Public serving endpoints: active ads for a placement and impression/click tracking.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from adserver.api.deps import get_db
from adserver.config import SERVING_SETTINGS
from adserver.models.db.enums import Placement, SelectionStrategy, UsageKind
from adserver.models.schemas.ads import ActiveAdsResponse, CampaignAd, TrackResponse
from adserver.models.segmentation import SegmentationQuery
from adserver.services.selection import serve_campaigns
from adserver.services.usage_counter import record_usage

router = APIRouter()

@router.get(
    "/active",
    response_model=ActiveAdsResponse,
    summary="Ads to render for a placement",
    description="Eligible campaigns for the placement and context. Falls back to house ads only when nothing is eligible."
)
def active_ads(
    placement: Placement = Query(...),
    community_id: Optional[str] = Query(None, max_length=100),
    category_id: Optional[str] = Query(None, max_length=100),
    business_id: Optional[str] = Query(None, max_length=100),
    limit: int = Query(int(SERVING_SETTINGS["default_limit"]), ge=1, le=int(SERVING_SETTINGS["max_limit"])),
    strategy: SelectionStrategy = Query(SelectionStrategy(SERVING_SETTINGS["default_strategy"])),
    include_fallback: bool = Query(True),
    db: Session = Depends(get_db),
) -> ActiveAdsResponse:
    result = serve_campaigns(
        db,
        placement,
        segmentation=SegmentationQuery(community_id, category_id, business_id),
        limit=limit,
        strategy=strategy,
        include_fallback=include_fallback,
    )
    return ActiveAdsResponse(
        ads=[CampaignAd.model_validate(c) for c in result.campaigns],
        fallback=result.used_fallback,
    )

@router.post(
    "/{campaign_id}/track",
    response_model=TrackResponse,
    summary="Record an impression or click",
    description="Always 200. accepted=false when the campaign is unknown or its cap is reached."
)
def track(
    campaign_id: int,
    kind: UsageKind = Query(...),
    db: Session = Depends(get_db),
) -> TrackResponse:
    result = record_usage(db, campaign_id, kind)
    return TrackResponse(accepted=result.accepted, reason=result.reason)
