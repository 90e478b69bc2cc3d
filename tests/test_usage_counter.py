from concurrent.futures import ThreadPoolExecutor

from adserver.models.db import Campaign
from adserver.models.db.enums import UsageKind
from adserver.services.usage_counter import CAP_REACHED, NOT_FOUND, RECORDED, record_usage

from conftest import TestingSessionLocal


def test_increment_without_cap(db_session, campaign_factory):
    c = campaign_factory()
    for _ in range(3):
        assert record_usage(db_session, c.id, UsageKind.IMPRESSION).accepted
    db_session.refresh(c)
    assert c.impressions == 3
    assert c.clicks == 0


def test_cap_is_a_soft_refusal(db_session, campaign_factory):
    c = campaign_factory(max_clicks=2)
    results = [record_usage(db_session, c.id, UsageKind.CLICK) for _ in range(4)]
    assert [r.reason for r in results] == [RECORDED, RECORDED, CAP_REACHED, CAP_REACHED]
    db_session.refresh(c)
    assert c.clicks == 2


def test_unknown_campaign_is_not_an_error(db_session):
    result = record_usage(db_session, 424242, UsageKind.IMPRESSION)
    assert result.accepted is False
    assert result.reason == NOT_FOUND


def test_concurrent_impressions_never_overshoot_cap(campaign_factory):
    cap, calls = 10, 40
    c = campaign_factory(max_impressions=cap)

    def _track(_):
        session = TestingSessionLocal()
        try:
            return record_usage(session, c.id, UsageKind.IMPRESSION).accepted
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(_track, range(calls)))

    assert outcomes.count(True) == cap
    assert outcomes.count(False) == calls - cap
    check = TestingSessionLocal()
    try:
        assert check.get(Campaign, c.id).impressions == cap
    finally:
        check.close()
