"""Central Enum definitions for campaign domain states.

These replace scattered string literals to ensure consistency across
DB models, schemas, and business logic.
"""
from __future__ import annotations
import enum


class CampaignStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    AWAITING_PAYMENT = "awaiting_payment"
    ACTIVE = "active"
    REJECTED = "rejected"
    ARCHIVED = "archived"


# Statuses from which an admin may still reject or archive.
NON_TERMINAL_STATUSES: frozenset[CampaignStatus] = frozenset({
    CampaignStatus.SUBMITTED,
    CampaignStatus.UNDER_REVIEW,
    CampaignStatus.APPROVED,
    CampaignStatus.AWAITING_PAYMENT,
})


class Placement(str, enum.Enum):
    HOME_TOP = "home_top"
    HOME_BOTTOM = "home_bottom"
    SIDEBAR_RIGHT_1 = "sidebar_right_1"
    SIDEBAR_RIGHT_2 = "sidebar_right_2"
    LISTING_TOP = "listing_top"
    LISTING_INLINE = "listing_inline"
    COMMUNITY_BANNER = "community_banner"
    EVENT_BANNER = "event_banner"
    BUSINESS_BANNER = "business_banner"
    CUSTOM = "custom"


class UserRole(str, enum.Enum):
    ADVERTISER = "ADVERTISER"
    ADMIN = "ADMIN"


class SegmentDimension(str, enum.Enum):
    COMMUNITY = "community"
    CATEGORY = "category"
    BUSINESS = "business"


class UsageKind(str, enum.Enum):
    IMPRESSION = "impression"
    CLICK = "click"


class SelectionStrategy(str, enum.Enum):
    ALL = "all"
    RANDOM = "random"
    WEIGHTED = "weighted"


class NotificationKind(str, enum.Enum):
    SUBMITTED_ADMIN_ALERT = "submitted_admin_alert"
    SUBMITTED_RECEIPT = "submitted_receipt"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class PaymentOutcome(str, enum.Enum):
    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already_active"
    DUPLICATE = "duplicate"
    UNKNOWN_CAMPAIGN = "unknown_campaign"
    ILLEGAL_STATE = "illegal_state"


__all__ = [
    "CampaignStatus",
    "NON_TERMINAL_STATUSES",
    "Placement",
    "UserRole",
    "SegmentDimension",
    "UsageKind",
    "SelectionStrategy",
    "NotificationKind",
    "PaymentOutcome",
]
