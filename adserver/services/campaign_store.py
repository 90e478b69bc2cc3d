"""Campaign persistence with conditional (compare-and-set) writes.

Cross-request coordination never uses in-process locks. Every state change is
a single ``UPDATE campaigns SET ... WHERE id = :id AND <predicate>`` and the
row count tells the caller whether the predicate still held when the write
ran. Relational engines evaluate the predicate under the row lock, so two
concurrent callers can never both pass a stale check.

The store does not commit; services own transaction boundaries so that, for
example, the payment ledger row and the activation commit together.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import ColumnElement, select, update, or_
from sqlalchemy.orm import Session

from adserver.errors import NotFoundError
from adserver.models.db import Campaign
from adserver.models.db.enums import CampaignStatus, UsageKind
from adserver.utils import get_logger

logger = get_logger(__name__)


class CampaignStore:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------- reads --
    def get(self, campaign_id: int, *, fresh: bool = False) -> Optional[Campaign]:
        """Load a campaign; ``fresh`` bypasses the identity map."""
        return self.session.get(Campaign, campaign_id, populate_existing=fresh)

    def require(self, campaign_id: int) -> Campaign:
        campaign = self.get(campaign_id)
        if campaign is None:
            raise NotFoundError(f"Campaign {campaign_id} not found", details={"campaign_id": campaign_id})
        return campaign

    def find(self, *conditions: ColumnElement[bool], limit: int | None = None, offset: int = 0) -> list[Campaign]:
        """Campaigns matching all conditions, newest first."""
        stmt = (
            select(Campaign)
            .where(*conditions)
            .order_by(Campaign.created_at.desc(), Campaign.id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    # ------------------------------------------------------------ writes --
    def add(self, campaign: Campaign) -> Campaign:
        self.session.add(campaign)
        self.session.flush()
        return campaign

    def conditional_update(
        self,
        campaign_id: int,
        conditions: Iterable[ColumnElement[bool]] = (),
        **values: Any,
    ) -> tuple[bool, Optional[Campaign]]:
        """Apply ``values`` iff the row exists and every condition holds.

        Returns (applied, campaign as stored after the statement). The
        campaign is None only when the id does not exist.
        """
        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        applied = result.rowcount == 1
        campaign = self.get(campaign_id, fresh=True)
        logger.debug(
            "Conditional campaign update",
            campaign_id=campaign_id,
            applied=applied,
            fields=sorted(values),
        )
        return applied, campaign

    def transition(
        self,
        campaign_id: int,
        from_statuses: Iterable[CampaignStatus],
        to_status: CampaignStatus,
        **values: Any,
    ) -> tuple[bool, Optional[Campaign]]:
        """Move status iff it is currently one of ``from_statuses``."""
        allowed = list(from_statuses)
        return self.conditional_update(
            campaign_id,
            [Campaign.status.in_(allowed)],
            status=to_status,
            **values,
        )

    def increment_if_below_cap(self, campaign_id: int, kind: UsageKind) -> bool:
        """Atomic compare-and-increment of the impression or click counter."""
        if kind == UsageKind.IMPRESSION:
            counter, cap = Campaign.impressions, Campaign.max_impressions
        else:
            counter, cap = Campaign.clicks, Campaign.max_clicks
        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id, or_(cap.is_(None), counter < cap))
            .values({counter: counter + 1})
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


__all__ = ["CampaignStore"]
