from __future__ import annotations
"""SQLAlchemy model for campaign segmentation rows.

One row per (campaign, dimension, target id). A campaign with no rows for a
dimension is a wildcard in that dimension.
"""
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .campaigns import Campaign
from adserver.database import Base
from .enums import SegmentDimension

class CampaignSegment(Base):
    __tablename__ = "campaign_segments"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    campaign_id: Mapped[int] = mapped_column(Integer, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    dimension: Mapped[SegmentDimension] = mapped_column(Enum(SegmentDimension), nullable=False)
    target_id: Mapped[str] = mapped_column(String, nullable=False)

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="segments")

    __table_args__ = (
        UniqueConstraint("campaign_id", "dimension", "target_id", name="uq_campaign_segment"),
    )
