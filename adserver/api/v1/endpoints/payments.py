"""
Payment gateway webhook.
"""
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session
from adserver.api.deps import get_db, get_notifier, verify_webhook_token
from adserver.models.schemas.payments import WebhookAck
from adserver.services.notifications import NotificationService
from adserver.services.payment_reconciliation import parse_gateway_event, process_payment_event
from adserver.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Payment confirmation webhook",
    description=(
        "Accepts checkout.session.completed and payment_intent.succeeded events. "
        "Duplicates are acknowledged without effect; malformed or unpaid events return 400 so the gateway may retry."
    )
)
async def payment_webhook(
    payload: Dict[str, Any] = Body(...),
    _: bool = Depends(verify_webhook_token),
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> WebhookAck:
    event = parse_gateway_event(payload)
    if event is None:
        logger.info("Ignoring unhandled payment event type", event_type=payload.get("type"), event_id=payload.get("id"))
        return WebhookAck(received=True, outcome="ignored")
    result = await process_payment_event(db, event, notifier)
    return WebhookAck(
        received=True,
        outcome=result.outcome.value,
        campaign_id=event.campaign_id,
        notified=result.notified,
    )
