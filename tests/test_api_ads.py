from fastapi.testclient import TestClient

from adserver.models.db import Campaign
from adserver.models.db.enums import CampaignStatus, Placement
from adserver.models.segmentation import Segmentation


def _active(client, **params):
    params.setdefault("placement", "home_top")
    r = client.get("/api/v1/ads/active", params=params)
    assert r.status_code == 200, r.text
    return r.json()


def test_descriptor_hides_counters_and_audit_fields(client: TestClient, campaign_factory):
    c = campaign_factory(image_mobile_url="https://cdn.example.org/m.png", impressions=5)
    body = _active(client)
    assert [a["id"] for a in body["ads"]] == [c.id]
    ad = body["ads"][0]
    assert set(ad) == {
        "id", "title", "placement", "redirect_url", "open_in_new_tab",
        "image_alt", "image_url", "sources", "is_fallback",
    }
    assert ad["sources"]["mobile"] == "https://cdn.example.org/m.png"
    assert ad["sources"]["desktop"] == "https://cdn.example.org/banner.png"


def test_fallback_served_only_when_nothing_eligible(client: TestClient, campaign_factory):
    house = campaign_factory(is_fallback=True)
    body = _active(client, include_fallback=True)
    assert [a["id"] for a in body["ads"]] == [house.id]
    assert body["fallback"] is True

    assert _active(client, include_fallback=False)["ads"] == []

    paid = campaign_factory()
    body = _active(client, include_fallback=True, limit=5)
    assert [a["id"] for a in body["ads"]] == [paid.id]
    assert body["fallback"] is False


def test_limit_and_strategy_all(client: TestClient, campaign_factory, ordered_times):
    first = campaign_factory(created_at=ordered_times[0])
    second = campaign_factory(created_at=ordered_times[1])
    third = campaign_factory(created_at=ordered_times[2])
    body = _active(client, strategy="all", limit=2)
    assert [a["id"] for a in body["ads"]] == [third.id, second.id]
    assert first.id not in [a["id"] for a in body["ads"]]


def test_limit_bounds_are_validated(client: TestClient):
    assert client.get("/api/v1/ads/active", params={"placement": "home_top", "limit": 0}).status_code == 422
    assert client.get("/api/v1/ads/active", params={"placement": "home_top", "limit": 11}).status_code == 422
    assert client.get("/api/v1/ads/active", params={"placement": "nowhere"}).status_code == 422


def test_segmentation_query_params(client: TestClient, campaign_factory):
    targeted = campaign_factory(segmentation=Segmentation.of(communities=["c-5"]), placement=Placement.COMMUNITY_BANNER)
    assert _active(client, placement="community_banner", community_id="c-5")["ads"][0]["id"] == targeted.id
    assert _active(client, placement="community_banner", community_id="c-6")["ads"] == []


def test_track_impressions_until_cap(client: TestClient, campaign_factory, db_session):
    c = campaign_factory(max_impressions=2)
    results = [
        client.post(f"/api/v1/ads/{c.id}/track", params={"kind": "impression"}).json()["accepted"]
        for _ in range(3)
    ]
    assert results == [True, True, False]
    db_session.expire_all()
    assert db_session.get(Campaign, c.id).impressions == 2
    # Capped campaign drops out of serving
    assert _active(client, include_fallback=False)["ads"] == []


def test_track_unknown_campaign_returns_not_accepted(client: TestClient):
    r = client.post("/api/v1/ads/123456/track", params={"kind": "click"})
    assert r.status_code == 200
    assert r.json() == {"accepted": False, "reason": "not_found"}


def test_track_rejects_unknown_kind(client: TestClient, campaign_factory):
    c = campaign_factory()
    assert client.post(f"/api/v1/ads/{c.id}/track", params={"kind": "hover"}).status_code == 422


def test_paused_campaign_is_not_served(client: TestClient, campaign_factory):
    campaign_factory(status=CampaignStatus.ACTIVE, is_active=False)
    assert _active(client, include_fallback=False)["ads"] == []
