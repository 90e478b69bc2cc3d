"""Best-effort campaign notifications.

``NotificationService.notify`` never raises: transport failures are logged and
reported as ``False`` so the lifecycle operation that triggered the message is
never undone. Repeats of the same (recipient, campaign, kind) inside the
throttle window are suppressed using the ``notification_logs`` table.

Transports:
* ``LoggingTransport`` default; records the message as a business event
* ``HttpRelayTransport`` POSTs JSON to an HTTP mail relay (``MAIL_RELAY_URL``)
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

import aiohttp
from sqlalchemy import select
from sqlalchemy.orm import Session

from adserver.config import ADMIN_ALERT_EMAILS, FRONTEND_URL, MAIL_RELAY_URL, NOTIFICATION_SETTINGS
from adserver.models.db import Campaign, NotificationLog, User
from adserver.models.db.enums import NotificationKind, UserRole
from adserver.utils import get_logger, log_business_event
from adserver.utils.time import ensure_utc, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class Message:
    recipient: str
    subject: str
    body: str
    kind: NotificationKind
    campaign_id: int


class NotificationTransport(Protocol):
    async def send(self, message: Message) -> None: ...


class LoggingTransport:
    async def send(self, message: Message) -> None:
        log_business_event(
            "notification_sent",
            {"recipient": message.recipient, "kind": message.kind.value, "subject": message.subject},
            campaign_id=message.campaign_id,
        )


class HttpRelayTransport:
    def __init__(self, url: str, timeout_seconds: float = 10.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def send(self, message: Message) -> None:
        payload = {
            "to": message.recipient,
            "subject": message.subject,
            "text": message.body,
            "tags": {"kind": message.kind.value, "campaign_id": message.campaign_id},
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, json=payload) as resp:
                if not 200 <= resp.status < 300:
                    text = await resp.text()
                    raise RuntimeError(f"Mail relay returned {resp.status}: {text[:200]}")


def default_transport() -> NotificationTransport:
    if MAIL_RELAY_URL:
        return HttpRelayTransport(MAIL_RELAY_URL, float(NOTIFICATION_SETTINGS["relay_timeout_seconds"]))
    return LoggingTransport()


def render(kind: NotificationKind, campaign: Campaign) -> tuple[str, str]:
    """Subject and plain-text body for a notification kind."""
    link = f"{FRONTEND_URL.rstrip('/')}/campaigns/{campaign.id}"
    title = campaign.title
    if kind == NotificationKind.SUBMITTED_ADMIN_ALERT:
        return (
            f"New banner campaign awaiting review: {title}",
            f"Campaign '{title}' for placement {campaign.placement.value} was submitted.\nReview: {link}",
        )
    if kind == NotificationKind.SUBMITTED_RECEIPT:
        return (
            f"We received your campaign: {title}",
            f"Your campaign '{title}' was submitted and will be reviewed shortly.\n{link}",
        )
    if kind == NotificationKind.APPROVED:
        amount = f"{(campaign.price_cents or 0) / 100:.2f} {(campaign.currency or 'usd').upper()}"
        return (
            f"Your campaign was approved: {title}",
            f"Campaign '{title}' was approved. Complete payment to publish it.\nPrice: {amount}\n{link}",
        )
    if kind == NotificationKind.REJECTED:
        return (
            f"Your campaign was not approved: {title}",
            f"Campaign '{title}' was rejected.\nReason: {campaign.rejected_reason or '-'}\n{link}",
        )
    end = ensure_utc(campaign.end_at)
    until = end.date().isoformat() if end else "further notice"
    return (
        f"Your campaign is live: {title}",
        f"Payment received. Campaign '{title}' is now published until {until}.\n{link}",
    )


class NotificationService:
    def __init__(
        self,
        session: Session,
        transport: Optional[NotificationTransport] = None,
        throttle_minutes: Optional[int] = None,
    ):
        self.session = session
        self.transport = transport or default_transport()
        minutes = NOTIFICATION_SETTINGS["throttle_window_minutes"] if throttle_minutes is None else throttle_minutes
        self.throttle_window = timedelta(minutes=int(minutes))

    def _log_row(self, recipient: str, campaign_id: int, kind: NotificationKind) -> Optional[NotificationLog]:
        return self.session.scalars(
            select(NotificationLog).where(
                NotificationLog.recipient == recipient,
                NotificationLog.campaign_id == campaign_id,
                NotificationLog.kind == kind,
            )
        ).first()

    def _throttled(self, row: Optional[NotificationLog], now: datetime) -> bool:
        if row is None or self.throttle_window.total_seconds() <= 0:
            return False
        return now - ensure_utc(row.last_sent_at) < self.throttle_window

    async def notify(
        self,
        recipient: Optional[str],
        campaign: Campaign,
        kind: NotificationKind,
        now: Optional[datetime] = None,
    ) -> bool:
        """Send one notification. Returns True only when the transport accepted it."""
        if not recipient:
            logger.warning("Notification skipped: no recipient", campaign_id=campaign.id, kind=kind.value)
            return False
        now = now or utc_now()
        try:
            row = self._log_row(recipient, campaign.id, kind)
            if self._throttled(row, now):
                logger.info("Notification throttled", recipient=recipient, campaign_id=campaign.id, kind=kind.value)
                return False
            subject, body = render(kind, campaign)
            await self.transport.send(Message(recipient, subject, body, kind, campaign.id))
            if row is None:
                self.session.add(NotificationLog(recipient=recipient, campaign_id=campaign.id, kind=kind, last_sent_at=now))
            else:
                row.last_sent_at = now
            self.session.commit()
            return True
        except Exception as e:
            self.session.rollback()
            logger.error(
                "Notification failed",
                exc_info=True,
                recipient=recipient,
                campaign_id=campaign.id,
                kind=kind.value,
                error=str(e),
            )
            return False

    def admin_recipients(self) -> list[str]:
        """Configured alert addresses, else every active admin user."""
        if ADMIN_ALERT_EMAILS:
            return list(ADMIN_ALERT_EMAILS)
        admins = self.session.scalars(
            select(User).where(User.role == UserRole.ADMIN, User.is_active.is_(True))
        )
        return [u.email for u in admins if u.email]

    def _owner_email(self, campaign: Campaign) -> Optional[str]:
        owner = campaign.creator
        return owner.email if owner else None

    async def notify_owner(self, campaign: Campaign, kind: NotificationKind) -> bool:
        try:
            recipient = self._owner_email(campaign)
        except Exception as e:
            self.session.rollback()
            logger.error("Notification recipient lookup failed", exc_info=True, kind=kind.value, error=str(e))
            return False
        return await self.notify(recipient, campaign, kind)

    async def notify_admins(self, campaign: Campaign) -> int:
        try:
            recipients = self.admin_recipients()
        except Exception as e:
            self.session.rollback()
            logger.error("Admin recipient lookup failed", exc_info=True, error=str(e))
            return 0
        sent = 0
        for email in recipients:
            if await self.notify(email, campaign, NotificationKind.SUBMITTED_ADMIN_ALERT):
                sent += 1
        return sent


__all__ = [
    "Message",
    "NotificationTransport",
    "LoggingTransport",
    "HttpRelayTransport",
    "NotificationService",
    "default_transport",
    "render",
]
