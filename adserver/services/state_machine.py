"""Campaign lifecycle state machine.

    submitted -> under_review -> approved -> awaiting_payment -> active
         \\______________\\____________\\______________\\-> rejected (admin, reason)
                                                        \\-> archived (admin; also from active)

Guards are checked before any write and raise PermissionDeniedError,
ValidationError or ConflictError. Each transition is then one conditional
write keyed on the status it was checked against; if another request moved
the campaign in between, the write matches nothing and the transition fails
with ConflictError instead of overwriting the newer state.

``activate`` is internal: only the payment reconciliation adapter calls it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from adserver.errors import ConflictError, PermissionDeniedError, ValidationError
from adserver.models.db import Campaign, User
from adserver.models.db.enums import CampaignStatus, NON_TERMINAL_STATUSES, Placement, UserRole
from adserver.models.segmentation import Segmentation
from adserver.services.campaign_store import CampaignStore
from adserver.services.pricing import PricingPolicy
from adserver.utils import get_logger, log_business_event
from adserver.utils.time import add_months, ensure_utc, utc_now, window_days

logger = get_logger(__name__)

REVIEWABLE_STATUSES = frozenset({CampaignStatus.SUBMITTED, CampaignStatus.UNDER_REVIEW})
CHECKOUT_STATUSES = frozenset({CampaignStatus.APPROVED, CampaignStatus.AWAITING_PAYMENT})
ARCHIVABLE_STATUSES = NON_TERMINAL_STATUSES | {CampaignStatus.ACTIVE}
OWNER_EDITABLE_STATUSES = NON_TERMINAL_STATUSES

# Fields update_campaign accepts; status and counters only move through transitions.
EDITABLE_FIELDS = frozenset({
    "title", "placement", "redirect_url", "image_alt", "open_in_new_tab",
    "image_url", "image_desktop_url", "image_tablet_url", "image_mobile_url",
    "weight", "max_impressions", "max_clicks", "start_at", "end_at",
    "is_fallback", "validity_months",
})
NULLABLE_FIELDS = frozenset({"max_impressions", "max_clicks", "start_at", "end_at"})
CAP_COUNTERS = {"max_impressions": "impressions", "max_clicks": "clicks"}


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=user.role)


@dataclass(frozen=True)
class CheckoutQuote:
    campaign_id: int
    amount_cents: int
    currency: str
    validity_months: int


# ----------------------------------------------------------------- guards --

def _require_admin(actor: Actor, action: str, campaign_id: Optional[int] = None) -> None:
    if not actor.is_admin:
        logger.warning("Transition denied: admin required", action=action, user_id=actor.user_id, campaign_id=campaign_id)
        raise PermissionDeniedError(f"Admin role required to {action} a campaign")


def _require_owner_or_admin(actor: Actor, campaign: Campaign, action: str) -> None:
    if actor.is_admin or campaign.created_by == actor.user_id:
        return
    logger.warning("Transition denied: not owner", action=action, user_id=actor.user_id, campaign_id=campaign.id)
    raise PermissionDeniedError(f"Only the owner or an admin may {action} this campaign")


def _require_status(campaign: Campaign, allowed: Iterable[CampaignStatus], action: str) -> None:
    if campaign.status not in allowed:
        raise ConflictError(
            f"Cannot {action} a campaign in status '{campaign.status.value}'",
            details={"campaign_id": campaign.id, "status": campaign.status.value},
        )


def _validate_window(start_at: Optional[datetime], end_at: Optional[datetime]) -> None:
    start, end = ensure_utc(start_at), ensure_utc(end_at)
    if start is not None and end is not None and start > end:
        raise ValidationError("start_at must be before or equal to end_at")


def _validate_numbers(values: dict[str, Any]) -> None:
    weight = values.get("weight")
    if weight is not None and weight < 0:
        raise ValidationError("weight must be >= 0")
    for cap in ("max_impressions", "max_clicks"):
        if values.get(cap) is not None and values[cap] < 0:
            raise ValidationError(f"{cap} must be >= 0")
    months = values.get("validity_months")
    if months is not None and months < 1:
        raise ValidationError("validity_months must be >= 1")


def _check_caps(campaign: Campaign, values: dict[str, Any]) -> None:
    for cap, counter in CAP_COUNTERS.items():
        new_cap = values.get(cap)
        used = getattr(campaign, counter)
        if new_cap is not None and new_cap < used:
            raise ValidationError(
                f"{cap} cannot be below the recorded {counter}",
                details={"campaign_id": campaign.id, cap: new_cap, counter: used},
            )


def _transition(
    store: CampaignStore,
    campaign: Campaign,
    from_statuses: Iterable[CampaignStatus],
    to_status: CampaignStatus,
    action: str,
    **values: Any,
) -> Campaign:
    applied, updated = store.transition(campaign.id, from_statuses, to_status, **values)
    if not applied or updated is None:
        store.rollback()
        current = updated.status.value if updated is not None else "missing"
        raise ConflictError(
            f"Campaign changed concurrently; cannot {action} (now '{current}')",
            details={"campaign_id": campaign.id, "status": current},
        )
    store.commit()
    return updated


# ------------------------------------------------------------ transitions --

def submit(
    store: CampaignStore,
    actor: Actor,
    data: dict[str, Any],
    segmentation: Segmentation = Segmentation(),
) -> Campaign:
    """Create a campaign in ``submitted``. Any authenticated actor may submit."""
    unknown = set(data) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown campaign fields: {sorted(unknown)}")
    if not data.get("title") or not data.get("redirect_url") or not data.get("placement"):
        raise ValidationError("title, placement and redirect_url are required")
    if not (data.get("image_url") or data.get("image_desktop_url") or data.get("image_tablet_url") or data.get("image_mobile_url")):
        raise ValidationError("At least one creative image URL is required")
    _validate_window(data.get("start_at"), data.get("end_at"))
    _validate_numbers(data)

    values = dict(data)
    values["placement"] = Placement(values["placement"])
    if not values.get("image_url"):
        # Default image is the first device variant supplied
        values["image_url"] = values.get("image_desktop_url") or values.get("image_tablet_url") or values.get("image_mobile_url")

    campaign = Campaign(
        **values,
        status=CampaignStatus.SUBMITTED,
        is_active=False,
        created_by=actor.user_id,
    )
    campaign.set_segmentation(segmentation)
    try:
        store.add(campaign)
        store.commit()
    except Exception:
        store.rollback()
        raise
    log_business_event(
        "campaign_submitted",
        {"placement": campaign.placement.value, "is_fallback": campaign.is_fallback},
        user_id=actor.user_id,
        campaign_id=campaign.id,
    )
    return campaign


def mark_under_review(store: CampaignStore, campaign_id: int, actor: Actor, now: Optional[datetime] = None) -> Campaign:
    _require_admin(actor, "review", campaign_id)
    campaign = store.require(campaign_id)
    _require_status(campaign, {CampaignStatus.SUBMITTED}, "review")
    updated = _transition(
        store, campaign, {CampaignStatus.SUBMITTED}, CampaignStatus.UNDER_REVIEW, "review",
        reviewed_by=actor.user_id, reviewed_at=now or utc_now(),
    )
    log_business_event("campaign_under_review", {}, user_id=actor.user_id, campaign_id=campaign_id)
    return updated


def approve(
    store: CampaignStore,
    campaign_id: int,
    actor: Actor,
    pricing: PricingPolicy,
    *,
    price_cents: Optional[int] = None,
    currency: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Campaign:
    """Approve a submitted or under-review campaign.

    When ``price_cents`` is omitted the pricing policy computes it from the
    placement and the serving window: the explicit start/end window when both
    are set, otherwise ``validity_months`` worth of 30-day periods.
    """
    _require_admin(actor, "approve", campaign_id)
    if price_cents is not None and price_cents < 0:
        raise ValidationError("price_cents must be >= 0")
    campaign = store.require(campaign_id)
    _require_status(campaign, REVIEWABLE_STATUSES, "approve")

    if price_cents is None:
        start, end = ensure_utc(campaign.start_at), ensure_utc(campaign.end_at)
        if start is not None and end is not None:
            days = window_days(start, end)
        else:
            days = campaign.validity_months * 30
        price_cents = pricing.price(campaign.placement, days)

    updated = _transition(
        store, campaign, REVIEWABLE_STATUSES, CampaignStatus.APPROVED, "approve",
        approved_by=actor.user_id,
        approved_at=now or utc_now(),
        price_cents=price_cents,
        currency=currency or pricing.currency,
        rejected_reason=None,
    )
    log_business_event(
        "campaign_approved",
        {"price_cents": price_cents, "currency": updated.currency},
        user_id=actor.user_id,
        campaign_id=campaign_id,
    )
    return updated


def reject(store: CampaignStore, campaign_id: int, actor: Actor, reason: str, now: Optional[datetime] = None) -> Campaign:
    """Reject from any non-terminal status. The only transition that force-clears is_active."""
    _require_admin(actor, "reject", campaign_id)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")
    campaign = store.require(campaign_id)
    _require_status(campaign, NON_TERMINAL_STATUSES, "reject")
    updated = _transition(
        store, campaign, NON_TERMINAL_STATUSES, CampaignStatus.REJECTED, "reject",
        rejected_reason=reason,
        rejected_by=actor.user_id,
        rejected_at=now or utc_now(),
        is_active=False,
    )
    log_business_event("campaign_rejected", {"reason": reason}, user_id=actor.user_id, campaign_id=campaign_id)
    return updated


def initiate_checkout(store: CampaignStore, campaign_id: int, actor: Actor) -> CheckoutQuote:
    """approved -> awaiting_payment. Re-entry from awaiting_payment is allowed."""
    campaign = store.require(campaign_id)
    _require_owner_or_admin(actor, campaign, "check out")
    _require_status(campaign, CHECKOUT_STATUSES, "check out")
    if campaign.price_cents is None:
        raise ConflictError("Campaign has no approved price", details={"campaign_id": campaign_id})
    updated = _transition(store, campaign, CHECKOUT_STATUSES, CampaignStatus.AWAITING_PAYMENT, "check out")
    log_business_event(
        "campaign_checkout_initiated",
        {"amount_cents": updated.price_cents},
        user_id=actor.user_id,
        campaign_id=campaign_id,
    )
    return CheckoutQuote(
        campaign_id=updated.id,
        amount_cents=int(updated.price_cents or 0),
        currency=updated.currency or "usd",
        validity_months=updated.validity_months,
    )


def archive(store: CampaignStore, campaign_id: int, actor: Actor, now: Optional[datetime] = None) -> Campaign:
    _require_admin(actor, "archive", campaign_id)
    campaign = store.require(campaign_id)
    _require_status(campaign, ARCHIVABLE_STATUSES, "archive")
    updated = _transition(
        store, campaign, ARCHIVABLE_STATUSES, CampaignStatus.ARCHIVED, "archive",
        is_active=False, archived_at=now or utc_now(),
    )
    log_business_event("campaign_archived", {}, user_id=actor.user_id, campaign_id=campaign_id)
    return updated


def activate(
    store: CampaignStore,
    campaign_id: int,
    validity_months: int,
    now: Optional[datetime] = None,
) -> tuple[bool, Optional[Campaign]]:
    """approved/awaiting_payment -> active with a serving window.

    start = existing start_at or now; end = start + validity_months.
    Does not commit and does not raise on a lost race: returns (applied,
    campaign) so the caller can fold it into its own transaction.
    """
    now = now or utc_now()
    campaign = store.get(campaign_id, fresh=True)
    if campaign is None:
        return False, None
    start = ensure_utc(campaign.start_at) or now
    end = add_months(start, validity_months)
    return store.transition(
        campaign_id, CHECKOUT_STATUSES, CampaignStatus.ACTIVE,
        is_active=True, start_at=start, end_at=end, paid_at=now,
        validity_months=validity_months,
    )


# ------------------------------------------------------- admin operations --

def set_active_flag(store: CampaignStore, campaign_id: int, actor: Actor, is_active: bool) -> Campaign:
    """Pause or resume serving without changing status. Resume requires status active."""
    _require_admin(actor, "pause or resume", campaign_id)
    campaign = store.require(campaign_id)
    if is_active:
        _require_status(campaign, {CampaignStatus.ACTIVE}, "resume")
        conditions = [Campaign.status == CampaignStatus.ACTIVE]
    else:
        conditions = []
    applied, updated = store.conditional_update(campaign_id, conditions, is_active=is_active)
    if not applied or updated is None:
        store.rollback()
        raise ConflictError("Campaign changed concurrently", details={"campaign_id": campaign_id})
    store.commit()
    log_business_event(
        "campaign_resumed" if is_active else "campaign_paused", {}, user_id=actor.user_id, campaign_id=campaign_id
    )
    return updated


def update_campaign(
    store: CampaignStore,
    campaign_id: int,
    actor: Actor,
    changes: dict[str, Any],
    segmentation: Optional[Segmentation] = None,
) -> Campaign:
    """Edit display metadata, caps, window, weight or segmentation.

    Owners may edit until the campaign goes live; admins at any time. The
    write is one conditional update: an owner's edit is keyed on the status
    it was checked against, and a new cap must not be below its counter.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {sorted(unknown)}")
    cleared = sorted(key for key, value in changes.items() if value is None and key not in NULLABLE_FIELDS)
    if cleared:
        raise ValidationError(f"Fields cannot be null: {cleared}", details={"fields": cleared})
    _validate_numbers(changes)
    campaign = store.require(campaign_id)
    _require_owner_or_admin(actor, campaign, "edit")
    if not actor.is_admin:
        _require_status(campaign, OWNER_EDITABLE_STATUSES, "edit")
    start = changes["start_at"] if "start_at" in changes else campaign.start_at
    end = changes["end_at"] if "end_at" in changes else campaign.end_at
    _validate_window(start, end)
    _check_caps(campaign, changes)

    values = dict(changes)
    if "placement" in values:
        values["placement"] = Placement(values["placement"])
    conditions = []
    if not actor.is_admin:
        conditions.append(Campaign.status.in_(list(OWNER_EDITABLE_STATUSES)))
    for cap, counter in CAP_COUNTERS.items():
        if values.get(cap) is not None:
            conditions.append(getattr(Campaign, counter) <= values[cap])

    try:
        applied, updated = store.conditional_update(campaign_id, conditions, updated_at=utc_now(), **values)
        if not applied or updated is None:
            store.rollback()
            current = store.get(campaign_id, fresh=True)
            if current is not None:
                if not actor.is_admin:
                    _require_status(current, OWNER_EDITABLE_STATUSES, "edit")
                _check_caps(current, changes)
            raise ConflictError("Campaign changed concurrently", details={"campaign_id": campaign_id})
        campaign = updated
        if segmentation is not None:
            campaign.set_segmentation(segmentation)
        store.commit()
    except Exception:
        store.rollback()
        raise
    log_business_event(
        "campaign_updated",
        {"fields": sorted(changes), "segmentation_changed": segmentation is not None},
        user_id=actor.user_id,
        campaign_id=campaign_id,
    )
    return campaign


__all__ = [
    "Actor",
    "CheckoutQuote",
    "submit",
    "mark_under_review",
    "approve",
    "reject",
    "initiate_checkout",
    "archive",
    "activate",
    "set_active_flag",
    "update_campaign",
]
