"""
Campaign submission, review and admin management endpoints.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from adserver.api.deps import get_db, get_current_user, require_admin, get_notifier, get_pricing, get_pagination_params
from adserver.models.db import Campaign, User
from adserver.models.db.enums import CampaignStatus, NotificationKind, Placement
from adserver.models.schemas.campaigns import (
    CampaignCreate,
    CampaignRead,
    CampaignUpdate,
    CampaignApprove,
    CampaignReject,
    CheckoutRead,
)
from adserver.services import state_machine
from adserver.services.campaign_store import CampaignStore
from adserver.services.eligibility import serving_conditions
from adserver.services.notifications import NotificationService
from adserver.services.pricing import PricingPolicy
from adserver.services.state_machine import Actor
from adserver.errors import PermissionDeniedError
from adserver.utils import get_logger
from adserver.utils.time import utc_now

router = APIRouter()
logger = get_logger(__name__)

def _read(campaign: Campaign) -> CampaignRead:
    return CampaignRead.model_validate(campaign)

@router.post(
    "/",
    response_model=CampaignRead,
    status_code=status.HTTP_201_CREATED,
    summary="Submit campaign",
    description="Submit a banner campaign for review. It starts in 'submitted' and is not served until paid."
)
async def submit_campaign(
    payload: CampaignCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> CampaignRead:
    store = CampaignStore(db)
    campaign = state_machine.submit(
        store,
        Actor.from_user(current_user),
        payload.campaign_fields(),
        payload.to_segmentation(),
    )
    await notifier.notify_admins(campaign)
    await notifier.notify(current_user.email, campaign, NotificationKind.SUBMITTED_RECEIPT)
    return _read(campaign)

@router.get(
    "/mine",
    response_model=List[CampaignRead],
    summary="List my campaigns"
)
async def list_my_campaigns(
    current_user: User = Depends(get_current_user),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db),
) -> List[CampaignRead]:
    campaigns = CampaignStore(db).find(
        Campaign.created_by == current_user.id,
        limit=pagination["limit"],
        offset=pagination["offset"],
    )
    return [_read(c) for c in campaigns]

@router.get(
    "/",
    response_model=List[CampaignRead],
    summary="List campaigns (admin)",
    description="Filter by placement, status, title substring, or only currently servable campaigns."
)
async def list_campaigns(
    placement: Optional[Placement] = Query(None),
    status_filter: Optional[CampaignStatus] = Query(None, alias="status"),
    q: Optional[str] = Query(None, max_length=200, description="Case-insensitive title substring"),
    active_only: bool = Query(False, description="Only campaigns eligible to serve right now"),
    pagination: dict = Depends(get_pagination_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[CampaignRead]:
    conditions = []
    if placement is not None:
        conditions.append(Campaign.placement == placement)
    if status_filter is not None:
        conditions.append(Campaign.status == status_filter)
    if q:
        conditions.append(Campaign.title.ilike(f"%{q.strip()}%"))
    if active_only:
        conditions.extend(serving_conditions(utc_now()))
    campaigns = CampaignStore(db).find(*conditions, limit=pagination["limit"], offset=pagination["offset"])
    return [_read(c) for c in campaigns]

@router.get(
    "/{campaign_id}",
    response_model=CampaignRead,
    summary="Get campaign"
)
async def get_campaign(
    campaign_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CampaignRead:
    campaign = CampaignStore(db).require(campaign_id)
    if not current_user.is_admin and campaign.created_by != current_user.id:
        raise PermissionDeniedError("Access denied")
    return _read(campaign)

@router.patch(
    "/{campaign_id}",
    response_model=CampaignRead,
    summary="Update campaign",
    description="Owners may edit until the campaign goes live; admins at any time. Status is not editable here."
)
async def update_campaign(
    campaign_id: int,
    payload: CampaignUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CampaignRead:
    campaign = state_machine.update_campaign(
        CampaignStore(db),
        campaign_id,
        Actor.from_user(current_user),
        payload.changes(),
        payload.to_segmentation(),
    )
    return _read(campaign)

@router.post("/{campaign_id}/review", response_model=CampaignRead, summary="Mark under review")
async def review_campaign(
    campaign_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CampaignRead:
    return _read(state_machine.mark_under_review(CampaignStore(db), campaign_id, Actor.from_user(admin)))

@router.post(
    "/{campaign_id}/approve",
    response_model=CampaignRead,
    summary="Approve campaign",
    description="Omit price_cents to price the campaign with the configured placement table."
)
async def approve_campaign(
    campaign_id: int,
    payload: Optional[CampaignApprove] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    pricing: PricingPolicy = Depends(get_pricing),
    notifier: NotificationService = Depends(get_notifier),
) -> CampaignRead:
    payload = payload or CampaignApprove()
    campaign = state_machine.approve(
        CampaignStore(db),
        campaign_id,
        Actor.from_user(admin),
        pricing,
        price_cents=payload.price_cents,
        currency=payload.currency,
    )
    await notifier.notify_owner(campaign, NotificationKind.APPROVED)
    return _read(campaign)

@router.post("/{campaign_id}/reject", response_model=CampaignRead, summary="Reject campaign")
async def reject_campaign(
    campaign_id: int,
    payload: CampaignReject,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> CampaignRead:
    campaign = state_machine.reject(CampaignStore(db), campaign_id, Actor.from_user(admin), payload.reason)
    await notifier.notify_owner(campaign, NotificationKind.REJECTED)
    return _read(campaign)

@router.post("/{campaign_id}/archive", response_model=CampaignRead, summary="Archive campaign")
async def archive_campaign(
    campaign_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CampaignRead:
    return _read(state_machine.archive(CampaignStore(db), campaign_id, Actor.from_user(admin)))

@router.post("/{campaign_id}/pause", response_model=CampaignRead, summary="Stop serving without changing status")
async def pause_campaign(
    campaign_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CampaignRead:
    return _read(state_machine.set_active_flag(CampaignStore(db), campaign_id, Actor.from_user(admin), False))

@router.post("/{campaign_id}/resume", response_model=CampaignRead, summary="Resume serving an active campaign")
async def resume_campaign(
    campaign_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> CampaignRead:
    return _read(state_machine.set_active_flag(CampaignStore(db), campaign_id, Actor.from_user(admin), True))

@router.post(
    "/{campaign_id}/checkout",
    response_model=CheckoutRead,
    summary="Initiate checkout",
    description="Moves an approved campaign to awaiting_payment and returns the amount due. Repeatable."
)
async def checkout_campaign(
    campaign_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CheckoutRead:
    quote = state_machine.initiate_checkout(CampaignStore(db), campaign_id, Actor.from_user(current_user))
    return CheckoutRead(
        campaign_id=quote.campaign_id,
        amount_cents=quote.amount_cents,
        currency=quote.currency,
        validity_months=quote.validity_months,
    )
