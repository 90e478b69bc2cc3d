from datetime import datetime, timezone

import pytest

from adserver.models.db.enums import Placement
from adserver.services.pricing import ProratedPlacementPricing, default_pricing
from adserver.utils.time import add_months, ensure_utc, window_days


@pytest.fixture()
def pricing():
    return ProratedPlacementPricing({"home_top": 5000, "default": 3000}, base_days=30, currency="usd")


def test_full_window_charges_base_price(pricing):
    assert pricing.price(Placement.HOME_TOP, 30) == 5000


def test_unlisted_placement_uses_default(pricing):
    assert pricing.base_price(Placement.LISTING_INLINE) == 3000
    assert pricing.price(Placement.LISTING_INLINE, 60) == 6000


def test_partial_window_rounds_up(pricing):
    # 5000 * 7 / 30 = 1166.67
    assert pricing.price(Placement.HOME_TOP, 7) == 1167


def test_window_shorter_than_a_day_bills_one_day(pricing):
    assert pricing.price(Placement.HOME_TOP, 0) == pricing.price(Placement.HOME_TOP, 1)


def test_table_requires_default_entry():
    with pytest.raises(ValueError):
        ProratedPlacementPricing({"home_top": 1})


def test_default_pricing_reads_configuration():
    policy = default_pricing()
    assert policy.price(Placement.HOME_TOP, 30) == 5000
    assert policy.currency == "usd"


def test_add_months_clamps_to_month_end():
    start = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)
    assert add_months(start, 1) == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert add_months(datetime(2024, 1, 31, tzinfo=timezone.utc), 1).day == 29
    assert add_months(datetime(2025, 11, 15, tzinfo=timezone.utc), 3) == datetime(2026, 2, 15, tzinfo=timezone.utc)


def test_window_days_rounds_partial_days_up():
    start = datetime(2025, 3, 1, tzinfo=timezone.utc)
    assert window_days(start, datetime(2025, 3, 31, tzinfo=timezone.utc)) == 30
    assert window_days(start, datetime(2025, 3, 2, 1, tzinfo=timezone.utc)) == 2
    assert window_days(start, start) == 1


def test_ensure_utc_attaches_timezone_to_naive_values():
    naive = datetime(2025, 5, 1, 8, 30)
    assert ensure_utc(naive).tzinfo is timezone.utc
    assert ensure_utc(None) is None
