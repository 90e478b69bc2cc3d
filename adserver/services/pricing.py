"""Pricing policy injected into the approval transition.

The engine never decides prices itself. ``approve`` receives a policy object
from its caller and asks it for an amount only when the admin did not supply
one. ``ProratedPlacementPricing`` is the deployed policy: a per-placement base
price for a 30-day window, prorated by the number of days served and rounded
up to the next minor unit.
"""
from __future__ import annotations

import math
from typing import Mapping, Protocol

from adserver.config import PRICING_SETTINGS
from adserver.models.db.enums import Placement


class PricingPolicy(Protocol):
    currency: str

    def price(self, placement: Placement, window_days: int) -> int: ...


class ProratedPlacementPricing:
    def __init__(
        self,
        base_prices_cents: Mapping[str, int],
        *,
        base_days: int = 30,
        currency: str = "usd",
    ):
        if "default" not in base_prices_cents:
            raise ValueError("base_prices_cents requires a 'default' entry")
        if base_days <= 0:
            raise ValueError("base_days must be positive")
        self._prices = dict(base_prices_cents)
        self.base_days = base_days
        self.currency = currency

    def base_price(self, placement: Placement) -> int:
        key = placement.value if isinstance(placement, Placement) else str(placement)
        return int(self._prices.get(key, self._prices["default"]))

    def price(self, placement: Placement, window_days: int) -> int:
        days = max(1, int(window_days))
        return math.ceil(self.base_price(placement) * days / self.base_days)


def default_pricing() -> ProratedPlacementPricing:
    """Policy built from PRICING_SETTINGS (read at call time so tests can patch)."""
    return ProratedPlacementPricing(
        PRICING_SETTINGS["placement_prices_cents"],  # type: ignore[arg-type]
        base_days=int(PRICING_SETTINGS["window_base_days"]),  # type: ignore[arg-type]
        currency=str(PRICING_SETTINGS["currency"]),
    )


__all__ = ["PricingPolicy", "ProratedPlacementPricing", "default_pricing"]
