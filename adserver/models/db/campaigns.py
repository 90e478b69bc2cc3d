from __future__ import annotations
"""SQLAlchemy model for banner ad campaigns."""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Text, DateTime, Boolean, Float, Enum, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User
    from adserver.models.segmentation import Segmentation
from sqlalchemy.sql import func
from adserver.database import Base
from .enums import CampaignStatus, Placement, SegmentDimension
from .segments import CampaignSegment

class Campaign(Base):
    __tablename__ = "campaigns"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    placement: Mapped[Placement] = mapped_column(Enum(Placement), nullable=False)
    status: Mapped[CampaignStatus] = mapped_column(Enum(CampaignStatus), default=CampaignStatus.SUBMITTED, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_fallback: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    # Creative & destination
    redirect_url: Mapped[str] = mapped_column(String, nullable=False)
    image_alt: Mapped[str] = mapped_column(String, default="")
    open_in_new_tab: Mapped[bool] = mapped_column(Boolean, default=True)
    image_url: Mapped[str] = mapped_column(String, default="")
    image_desktop_url: Mapped[str] = mapped_column(String, default="")
    image_tablet_url: Mapped[str] = mapped_column(String, default="")
    image_mobile_url: Mapped[str] = mapped_column(String, default="")

    # Selection weight, window and caps
    weight: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_impressions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_clicks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    impressions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Pricing snapshot (set at approval)
    price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    validity_months: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    rejected_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Audit trail
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reviewed_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    creator: Mapped["User"] = relationship("User", back_populates="campaigns", foreign_keys=[created_by])
    segments: Mapped[list[CampaignSegment]] = relationship(
        CampaignSegment, back_populates="campaign", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("impressions >= 0 AND clicks >= 0", name="counters_non_negative"),
        CheckConstraint("max_impressions IS NULL OR max_impressions >= 0", name="max_impressions_non_negative"),
        CheckConstraint("max_clicks IS NULL OR max_clicks >= 0", name="max_clicks_non_negative"),
        CheckConstraint("weight >= 0", name="weight_non_negative"),
        CheckConstraint("start_at IS NULL OR end_at IS NULL OR start_at <= end_at", name="window_ordered"),
        Index("ix_campaigns_placement_active", "placement", "is_active"),
        Index("ix_campaigns_window", "start_at", "end_at"),
    )

    @property
    def segmentation(self) -> Segmentation:
        from adserver.models.segmentation import Segmentation

        ids: dict[SegmentDimension, list[str]] = {d: [] for d in SegmentDimension}
        for seg in self.segments:
            ids[seg.dimension].append(seg.target_id)
        return Segmentation.of(
            ids[SegmentDimension.COMMUNITY],
            ids[SegmentDimension.CATEGORY],
            ids[SegmentDimension.BUSINESS],
        )

    def set_segmentation(self, segmentation: Segmentation) -> None:
        # Keep unchanged rows so the unique (campaign, dimension, target) index
        # never sees a delete and re-insert of the same triple in one flush.
        existing = {(seg.dimension, seg.target_id): seg for seg in self.segments}
        self.segments = [
            existing.get((dimension, target_id)) or CampaignSegment(dimension=dimension, target_id=target_id)
            for dimension, target_id in segmentation.pairs()
        ]

    @property
    def sources(self) -> dict[str, str]:
        """Per-device creative URLs; each variant falls back to the default image."""
        return {
            "desktop": self.image_desktop_url or self.image_url or "",
            "tablet": self.image_tablet_url or self.image_url or "",
            "mobile": self.image_mobile_url or self.image_url or "",
            "default": self.image_url or self.image_desktop_url or self.image_tablet_url or self.image_mobile_url or "",
        }
