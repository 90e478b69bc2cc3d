"""Core application configuration & tunable serving rules.

All business rules that may evolve (serving limits, pricing tables, notification
throttling, rate limits) are centralized here so they can be adjusted without
diving into service logic. Values are module constants overridable through
environment variables; mutable dicts are allowed so tests can monkeypatch them.
"""
from __future__ import annotations

import os

# ------------------------------- Database --------------------------------- #
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./adserver.db")

# -------------------------------- Serving --------------------------------- #
SERVING_SETTINGS: dict[str, int | str] = {
	"default_limit": 1,
	"max_limit": 10,          # Upper bound accepted on /ads/active
	"default_strategy": "weighted",
}

# -------------------------------- Pricing --------------------------------- #
# Base price in minor units (cents) for a 30-day window, per placement.
# Prorated by window length in ProratedPlacementPricing.
PRICING_SETTINGS: dict[str, int | str | dict[str, int]] = {
	"window_base_days": 30,
	"currency": os.getenv("AD_CURRENCY", "usd"),
	"default_validity_months": 1,
	"placement_prices_cents": {
		"home_top": 5000,
		"home_bottom": 3000,
		"sidebar_right_1": 2000,
		"sidebar_right_2": 2000,
		"default": 3000,
	},
}

# ------------------------------ Notifications ----------------------------- #
NOTIFICATION_SETTINGS: dict[str, int | float] = {
	"throttle_window_minutes": 10,   # Same (recipient, campaign, kind) suppressed inside window
	"relay_timeout_seconds": 10.0,
}

# Optional HTTP mail relay. When unset notifications are only logged.
MAIL_RELAY_URL: str | None = os.getenv("MAIL_RELAY_URL") or None

_admin_emails_raw = os.getenv("ADMIN_ALERT_EMAILS", "").strip()
ADMIN_ALERT_EMAILS: list[str] = [e.strip() for e in _admin_emails_raw.split(",") if e.strip()]

FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

# -------------------------------- Payments -------------------------------- #
# Shared token the gateway relay presents in X-Webhook-Token. Signature
# verification happens upstream of this service.
PAYMENT_WEBHOOK_TOKEN: str | None = os.getenv("PAYMENT_WEBHOOK_TOKEN") or None

# ------------------------------- Rate Limits ------------------------------ #
RATE_LIMIT_SETTINGS: dict[str, dict[str, int]] = {
	"default": {"limit": 1000, "window_seconds": 3600},
	"serve": {"limit": 600, "window_seconds": 60},
	"track": {"limit": 1200, "window_seconds": 60},
}

__all__ = [
	"DATABASE_URL",
	"SERVING_SETTINGS",
	"PRICING_SETTINGS",
	"NOTIFICATION_SETTINGS",
	"MAIL_RELAY_URL",
	"ADMIN_ALERT_EMAILS",
	"FRONTEND_URL",
	"PAYMENT_WEBHOOK_TOKEN",
	"RATE_LIMIT_SETTINGS",
]
