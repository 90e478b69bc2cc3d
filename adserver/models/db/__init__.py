from .users import User
from .segments import CampaignSegment
from .campaigns import Campaign
from .payment_events import PaymentEvent
from .notification_logs import NotificationLog
from .enums import (
    CampaignStatus,
    Placement,
    UserRole,
    SegmentDimension,
    UsageKind,
    SelectionStrategy,
    NotificationKind,
    PaymentOutcome,
)

__all__ = [
    "User",
    "CampaignSegment",
    "Campaign",
    "PaymentEvent",
    "NotificationLog",
    "CampaignStatus",
    "Placement",
    "UserRole",
    "SegmentDimension",
    "UsageKind",
    "SelectionStrategy",
    "NotificationKind",
    "PaymentOutcome",
]
