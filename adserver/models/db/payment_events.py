from __future__ import annotations
"""SQLAlchemy model for the payment event idempotency ledger.

The gateway delivers at least once; the unique ``event_id`` absorbs replays
before any campaign write happens.
"""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from adserver.database import Base
from .enums import PaymentOutcome

class PaymentEvent(Base):
    __tablename__ = "payment_events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    event_type: Mapped[str | None] = mapped_column(String, nullable=True)
    # Not a foreign key: events for unknown campaigns are still recorded
    campaign_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    outcome: Mapped[PaymentOutcome] = mapped_column(Enum(PaymentOutcome), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
