"""
Public serving descriptors. No counters or audit fields leave through these.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict
from ..db.enums import Placement

class AdSources(BaseModel):
    desktop: str
    tablet: str
    mobile: str
    default: str

class CampaignAd(BaseModel):
    id: int
    title: str
    placement: Placement
    redirect_url: str
    open_in_new_tab: bool
    image_alt: str
    image_url: str
    sources: AdSources
    is_fallback: bool

    model_config = ConfigDict(from_attributes=True)

class ActiveAdsResponse(BaseModel):
    ads: list[CampaignAd]
    fallback: bool = False

class TrackResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
