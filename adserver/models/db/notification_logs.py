from __future__ import annotations
"""SQLAlchemy model throttling repeated notifications per recipient/campaign/kind."""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from adserver.database import Base
from .enums import NotificationKind

class NotificationLog(Base):
    __tablename__ = "notification_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Email address rather than user id: admin alerts may go to configured addresses
    recipient: Mapped[str] = mapped_column(String, nullable=False, index=True)
    campaign_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    kind: Mapped[NotificationKind] = mapped_column(Enum(NotificationKind), nullable=False)
    last_sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("recipient", "campaign_id", "kind", name="uq_notification_recipient_campaign_kind"),
    )
