from .base import ResponseBase, SegmentationIn, SegmentationOut
from .campaigns import (
    CampaignCreate,
    CampaignUpdate,
    CampaignRead,
    CampaignApprove,
    CampaignReject,
    CheckoutRead,
)
from .ads import AdSources, CampaignAd, ActiveAdsResponse, TrackResponse
from .payments import WebhookAck

__all__ = [
    # Base
    "ResponseBase",
    "SegmentationIn",
    "SegmentationOut",

    # Campaigns
    "CampaignCreate",
    "CampaignUpdate",
    "CampaignRead",
    "CampaignApprove",
    "CampaignReject",
    "CheckoutRead",

    # Serving
    "AdSources",
    "CampaignAd",
    "ActiveAdsResponse",
    "TrackResponse",

    # Payments
    "WebhookAck",
]
