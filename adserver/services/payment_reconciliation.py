"""Payment reconciliation: turn gateway confirmations into campaign activations.

Delivery is at least once and one transaction can arrive as more than one
event shape, so activation is guarded twice:

1. The ``payment_events`` ledger is keyed on the gateway event id. A replayed
   id fails the unique insert and is absorbed before any campaign write.
2. Activation itself is one conditional write ``WHERE status IN (approved,
   awaiting_payment)``. A second event type for the same payment (different
   id) finds the campaign already active and changes nothing.

The ledger row and the activation commit in the same transaction. The owner
is notified only after a first-time activation, and a failed notification
never rolls the activation back.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adserver.errors import ExternalEventError
from adserver.models.db import Campaign, PaymentEvent
from adserver.models.db.enums import CampaignStatus, NotificationKind, PaymentOutcome
from adserver.services import state_machine
from adserver.services.campaign_store import CampaignStore
from adserver.services.notifications import NotificationService
from adserver.utils import get_logger, log_business_event
from adserver.utils.time import utc_now

logger = get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
HANDLED_EVENT_TYPES = frozenset({CHECKOUT_COMPLETED, PAYMENT_INTENT_SUCCEEDED})


@dataclass(frozen=True)
class PaymentConfirmation:
    event_id: Optional[str]
    campaign_id: Optional[int]
    confirmed: bool
    validity_months: Optional[int] = None
    event_type: Optional[str] = None


@dataclass
class ReconcileResult:
    outcome: PaymentOutcome
    campaign: Optional[Campaign] = None
    notified: bool = False


def _int_or_none(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ExternalEventError(f"Payment event field '{field_name}' is not an integer", details={field_name: value})


def _mapping(value: Any, path: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ExternalEventError(f"Payment event field '{path}' must be an object", details={"field": path})
    return value


def parse_gateway_event(payload: Mapping[str, Any]) -> Optional[PaymentConfirmation]:
    """Map a gateway payload onto a PaymentConfirmation.

    Returns None for event types this service does not act on. Accepts the
    checkout-session and payment-intent shapes plus a flat
    ``{event_id, campaign_id, confirmed, validity_months}`` form.
    """
    if not isinstance(payload, Mapping):
        raise ExternalEventError("Payment event payload must be a JSON object")

    if "type" not in payload:
        return PaymentConfirmation(
            event_id=payload.get("event_id"),
            campaign_id=_int_or_none(payload.get("campaign_id"), "campaign_id"),
            confirmed=bool(payload.get("confirmed", False)),
            validity_months=_int_or_none(payload.get("validity_months"), "validity_months"),
            event_type="direct",
        )

    event_type = payload.get("type")
    if event_type not in HANDLED_EVENT_TYPES:
        return None
    data = _mapping(payload.get("data"), "data")
    obj = _mapping(data.get("object"), "data.object")
    metadata = _mapping(obj.get("metadata"), "data.object.metadata")
    if event_type == CHECKOUT_COMPLETED:
        confirmed = obj.get("payment_status") == "paid"
    else:
        confirmed = obj.get("status") == "succeeded"
    return PaymentConfirmation(
        event_id=payload.get("id"),
        campaign_id=_int_or_none(metadata.get("campaign_id"), "campaign_id"),
        confirmed=confirmed,
        validity_months=_int_or_none(metadata.get("validity_months"), "validity_months"),
        event_type=event_type,
    )


def _validate(event: PaymentConfirmation) -> None:
    if not event.event_id:
        raise ExternalEventError("Payment event has no event id")
    if event.campaign_id is None:
        raise ExternalEventError("Payment event has no campaign id", details={"event_id": event.event_id})
    if not event.confirmed:
        raise ExternalEventError("Payment not confirmed", details={"event_id": event.event_id})
    if event.validity_months is not None and event.validity_months <= 0:
        raise ExternalEventError(
            "validity_months must be positive",
            details={"event_id": event.event_id, "validity_months": event.validity_months},
        )


def _claim_event(session: Session, event: PaymentConfirmation) -> Optional[PaymentEvent]:
    """Insert the ledger row; None when this event id was already processed."""
    row = PaymentEvent(
        event_id=event.event_id,
        event_type=event.event_type,
        campaign_id=event.campaign_id,
        outcome=PaymentOutcome.ACTIVATED,
    )
    try:
        session.add(row)
        session.flush()
        return row
    except IntegrityError:
        session.rollback()
        return None


def reconcile_payment(session: Session, event: PaymentConfirmation, now: Optional[datetime] = None) -> ReconcileResult:
    """Idempotently activate the campaign a confirmed payment refers to."""
    _validate(event)
    now = now or utc_now()
    store = CampaignStore(session)

    ledger = _claim_event(session, event)
    if ledger is None:
        log_business_event(
            "payment_event_absorbed",
            {"event_id": event.event_id, "gateway_event_type": event.event_type, "outcome": PaymentOutcome.DUPLICATE.value},
            campaign_id=event.campaign_id,
        )
        return ReconcileResult(PaymentOutcome.DUPLICATE, store.get(event.campaign_id))

    try:
        campaign = store.get(event.campaign_id, fresh=True)
        if campaign is None:
            outcome = PaymentOutcome.UNKNOWN_CAMPAIGN
        elif campaign.status == CampaignStatus.ACTIVE:
            outcome = PaymentOutcome.ALREADY_ACTIVE
        elif campaign.status not in state_machine.CHECKOUT_STATUSES:
            outcome = PaymentOutcome.ILLEGAL_STATE
        else:
            months = event.validity_months or campaign.validity_months
            applied, campaign = state_machine.activate(store, event.campaign_id, months, now)
            if applied:
                outcome = PaymentOutcome.ACTIVATED
            elif campaign is not None and campaign.status == CampaignStatus.ACTIVE:
                outcome = PaymentOutcome.ALREADY_ACTIVE
            else:
                outcome = PaymentOutcome.ILLEGAL_STATE
        ledger.outcome = outcome
        store.commit()
    except Exception:
        store.rollback()
        raise

    details = {"event_id": event.event_id, "gateway_event_type": event.event_type, "outcome": outcome.value}
    if outcome == PaymentOutcome.ACTIVATED:
        log_business_event("campaign_activated", details, campaign_id=event.campaign_id)
    else:
        if outcome in (PaymentOutcome.UNKNOWN_CAMPAIGN, PaymentOutcome.ILLEGAL_STATE):
            logger.warning("Payment event not applied", campaign_id=event.campaign_id, **details)
        log_business_event("payment_event_absorbed", details, campaign_id=event.campaign_id)
    return ReconcileResult(outcome, campaign)


async def process_payment_event(
    session: Session,
    event: PaymentConfirmation,
    notifier: NotificationService,
    now: Optional[datetime] = None,
) -> ReconcileResult:
    """Reconcile, then notify the owner after a first-time activation."""
    result = reconcile_payment(session, event, now)
    if result.outcome == PaymentOutcome.ACTIVATED and result.campaign is not None:
        result.notified = await notifier.notify_owner(result.campaign, NotificationKind.PUBLISHED)
    return result


__all__ = [
    "PaymentConfirmation",
    "ReconcileResult",
    "parse_gateway_event",
    "reconcile_payment",
    "process_payment_event",
]
