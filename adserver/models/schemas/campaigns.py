"""
Pydantic schemas for campaign submission, review and admin management.
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from ..db.enums import CampaignStatus, Placement
from ..segmentation import Segmentation
from .base import SegmentationIn, SegmentationOut
from ...utils.time import ensure_utc

# Columns that cannot be cleared through a partial update
REQUIRED_FIELDS = frozenset({
    "title", "placement", "redirect_url", "image_alt", "open_in_new_tab",
    "image_url", "image_desktop_url", "image_tablet_url", "image_mobile_url",
    "weight", "is_fallback", "validity_months",
})

def _segmentation_out(value: Any) -> Any:
    if isinstance(value, Segmentation):
        return {
            "communities": sorted(value.communities),
            "categories": sorted(value.categories),
            "businesses": sorted(value.businesses),
        }
    return value

class CampaignCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    placement: Placement
    redirect_url: str = Field(min_length=1, max_length=2000)
    image_alt: str = Field("", max_length=300)
    open_in_new_tab: bool = True
    image_url: Optional[str] = None
    image_desktop_url: Optional[str] = None
    image_tablet_url: Optional[str] = None
    image_mobile_url: Optional[str] = None
    weight: float = Field(1.0, ge=0)
    max_impressions: Optional[int] = Field(None, ge=0)
    max_clicks: Optional[int] = Field(None, ge=0)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_fallback: bool = False
    validity_months: int = Field(1, ge=1, le=24)
    segmentation: SegmentationIn = Field(default_factory=SegmentationIn)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Spring Market Days",
            "placement": "home_top",
            "redirect_url": "https://example.org/spring",
            "image_url": "https://cdn.example.org/banners/spring.png",
            "image_mobile_url": "https://cdn.example.org/banners/spring-m.png",
            "weight": 2,
            "max_impressions": 10000,
            "validity_months": 1,
            "segmentation": {"communities": ["c-17"], "categories": [], "businesses": []}
        }
    })

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check(self):
        if self.start_at and self.end_at and self.start_at > self.end_at:
            raise ValueError("start_at must be before or equal to end_at")
        if not (self.image_url or self.image_desktop_url or self.image_tablet_url or self.image_mobile_url):
            raise ValueError("At least one creative image URL is required")
        return self

    def campaign_fields(self) -> dict[str, Any]:
        data = self.model_dump(exclude={"segmentation"})
        return {k: v for k, v in data.items() if v is not None}

    def to_segmentation(self) -> Segmentation:
        return Segmentation.of(self.segmentation.communities, self.segmentation.categories, self.segmentation.businesses)

class CampaignUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    placement: Optional[Placement] = None
    redirect_url: Optional[str] = Field(None, min_length=1, max_length=2000)
    image_alt: Optional[str] = Field(None, max_length=300)
    open_in_new_tab: Optional[bool] = None
    image_url: Optional[str] = None
    image_desktop_url: Optional[str] = None
    image_tablet_url: Optional[str] = None
    image_mobile_url: Optional[str] = None
    weight: Optional[float] = Field(None, ge=0)
    max_impressions: Optional[int] = Field(None, ge=0)
    max_clicks: Optional[int] = Field(None, ge=0)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_fallback: Optional[bool] = None
    validity_months: Optional[int] = Field(None, ge=1, le=24)
    segmentation: Optional[SegmentationIn] = None

    @field_validator("start_at", "end_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _no_null_required(self):
        cleared = sorted(f for f in self.model_fields_set if f in REQUIRED_FIELDS and getattr(self, f) is None)
        if cleared:
            raise ValueError(f"Fields cannot be null: {cleared}")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"segmentation"})

    def to_segmentation(self) -> Optional[Segmentation]:
        if self.segmentation is None:
            return None
        return Segmentation.of(self.segmentation.communities, self.segmentation.categories, self.segmentation.businesses)

class CampaignRead(BaseModel):
    id: int
    title: str
    placement: Placement
    status: CampaignStatus
    is_active: bool
    is_fallback: bool
    redirect_url: str
    image_alt: str
    open_in_new_tab: bool
    image_url: str
    sources: dict[str, str]
    weight: float
    start_at: Optional[datetime]
    end_at: Optional[datetime]
    max_impressions: Optional[int]
    max_clicks: Optional[int]
    impressions: int
    clicks: int
    price_cents: Optional[int]
    currency: Optional[str]
    validity_months: int
    rejected_reason: Optional[str]
    segmentation: SegmentationOut
    created_by: int
    reviewed_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejected_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("segmentation", mode="before")
    @classmethod
    def _segmentation(cls, value: Any) -> Any:
        return _segmentation_out(value)

class CampaignApprove(BaseModel):
    """Omit price_cents to let the pricing policy compute it."""
    price_cents: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=8)

class CampaignReject(BaseModel):
    reason: str = Field(max_length=2000)

class CheckoutRead(BaseModel):
    campaign_id: int
    amount_cents: int
    currency: str
    validity_months: int
