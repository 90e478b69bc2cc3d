from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from conftest import TestingSessionLocal

from adserver.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from adserver.models.db import Campaign
from adserver.models.db.enums import CampaignStatus, Placement, UserRole
from adserver.models.segmentation import Segmentation
from adserver.services import state_machine
from adserver.services.campaign_store import CampaignStore
from adserver.services.pricing import ProratedPlacementPricing
from adserver.services.state_machine import Actor


@pytest.fixture()
def store(db_session):
    return CampaignStore(db_session)


@pytest.fixture()
def pricing():
    return ProratedPlacementPricing({"home_top": 3000, "default": 1500}, currency="usd")


@pytest.fixture()
def owner(advertiser):
    return Actor.from_user(advertiser)


@pytest.fixture()
def admin_actor(admin):
    return Actor.from_user(admin)


def _submit(store, actor, **overrides):
    data = {
        "title": "Farmers market",
        "placement": Placement.HOME_TOP,
        "redirect_url": "https://example.org/market",
        "image_url": "https://cdn.example.org/market.png",
    }
    data.update(overrides)
    return state_machine.submit(store, actor, data, Segmentation.of(communities=["c1"]))


def test_submit_creates_inactive_submitted_campaign(store, owner):
    c = _submit(store, owner)
    assert c.status == CampaignStatus.SUBMITTED
    assert c.is_active is False
    assert c.created_by == owner.user_id
    assert c.segmentation.communities == frozenset({"c1"})


def test_submit_rejects_inverted_window(store, owner):
    start = datetime(2025, 6, 10, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        _submit(store, owner, start_at=start, end_at=start - timedelta(days=1))


def test_submit_defaults_image_to_first_device_variant(store, owner):
    c = _submit(store, owner, image_url=None, image_mobile_url="https://cdn.example.org/m.png")
    assert c.image_url == "https://cdn.example.org/m.png"
    assert c.sources["desktop"] == "https://cdn.example.org/m.png"


def test_full_happy_path_to_active(store, owner, admin_actor, pricing):
    c = _submit(store, owner)
    c = state_machine.mark_under_review(store, c.id, admin_actor)
    assert c.status == CampaignStatus.UNDER_REVIEW
    assert c.reviewed_by == admin_actor.user_id

    c = state_machine.approve(store, c.id, admin_actor, pricing)
    assert c.status == CampaignStatus.APPROVED
    assert c.approved_by == admin_actor.user_id
    assert c.approved_at is not None
    # validity_months=1 -> 30 days -> full base price
    assert c.price_cents == 3000
    assert c.currency == "usd"

    quote = state_machine.initiate_checkout(store, c.id, owner)
    assert quote.amount_cents == 3000
    # Re-entering checkout is allowed
    state_machine.initiate_checkout(store, c.id, owner)
    assert store.get(c.id, fresh=True).status == CampaignStatus.AWAITING_PAYMENT

    now = datetime(2025, 1, 31, 9, 0, tzinfo=timezone.utc)
    applied, active = state_machine.activate(store, c.id, 1, now)
    store.commit()
    assert applied is True
    assert active.status == CampaignStatus.ACTIVE
    assert active.is_active is True
    assert active.start_at.replace(tzinfo=timezone.utc) == now
    assert active.end_at.replace(tzinfo=timezone.utc) == datetime(2025, 2, 28, 9, 0, tzinfo=timezone.utc)


def test_approve_prices_explicit_window(store, owner, admin_actor, pricing):
    start = datetime(2025, 3, 1, tzinfo=timezone.utc)
    c = _submit(store, owner, start_at=start, end_at=start + timedelta(days=15))
    c = state_machine.approve(store, c.id, admin_actor, pricing)
    assert c.price_cents == 1500


def test_approve_with_supplied_price_skips_policy(store, owner, admin_actor, pricing):
    c = _submit(store, owner)
    c = state_machine.approve(store, c.id, admin_actor, pricing, price_cents=999, currency="eur")
    assert (c.price_cents, c.currency) == (999, "eur")


def test_owner_cannot_approve_and_nothing_changes(store, owner, pricing):
    c = _submit(store, owner)
    with pytest.raises(PermissionDeniedError):
        state_machine.approve(store, c.id, owner, pricing)
    assert store.get(c.id, fresh=True).status == CampaignStatus.SUBMITTED


def test_other_advertiser_cannot_checkout(store, owner, admin_actor, pricing, user_factory):
    c = _submit(store, owner)
    state_machine.approve(store, c.id, admin_actor, pricing)
    stranger = Actor.from_user(user_factory(UserRole.ADVERTISER))
    with pytest.raises(PermissionDeniedError):
        state_machine.initiate_checkout(store, c.id, stranger)
    assert store.get(c.id, fresh=True).status == CampaignStatus.APPROVED


def test_checkout_before_approval_conflicts(store, owner):
    c = _submit(store, owner)
    with pytest.raises(ConflictError):
        state_machine.initiate_checkout(store, c.id, owner)


def test_reject_requires_reason(store, owner, admin_actor):
    c = _submit(store, owner)
    with pytest.raises(ValidationError):
        state_machine.reject(store, c.id, admin_actor, "   ")
    assert store.get(c.id, fresh=True).status == CampaignStatus.SUBMITTED


def test_reject_from_awaiting_payment_clears_active_flag(store, owner, admin_actor, pricing):
    c = _submit(store, owner)
    state_machine.approve(store, c.id, admin_actor, pricing)
    state_machine.initiate_checkout(store, c.id, owner)
    c = state_machine.reject(store, c.id, admin_actor, "  low quality ")
    assert c.status == CampaignStatus.REJECTED
    assert c.rejected_reason == "low quality"
    assert c.is_active is False


def test_rejected_campaign_cannot_be_activated_or_approved(store, owner, admin_actor, pricing):
    c = _submit(store, owner)
    state_machine.reject(store, c.id, admin_actor, "low quality")

    applied, after = state_machine.activate(store, c.id, 1)
    store.commit()
    assert applied is False
    assert after.status == CampaignStatus.REJECTED

    with pytest.raises(ConflictError):
        state_machine.approve(store, c.id, admin_actor, pricing)
    with pytest.raises(ConflictError):
        state_machine.initiate_checkout(store, c.id, owner)


def test_review_only_from_submitted(store, owner, admin_actor):
    c = _submit(store, owner)
    state_machine.mark_under_review(store, c.id, admin_actor)
    with pytest.raises(ConflictError):
        state_machine.mark_under_review(store, c.id, admin_actor)


def test_archive_active_campaign(store, owner, admin_actor, campaign_factory):
    c = campaign_factory(status=CampaignStatus.ACTIVE)
    archived = state_machine.archive(store, c.id, admin_actor)
    assert archived.status == CampaignStatus.ARCHIVED
    assert archived.is_active is False
    assert archived.archived_at is not None
    with pytest.raises(ConflictError):
        state_machine.archive(store, c.id, admin_actor)


def test_unknown_campaign_raises_not_found(store, admin_actor, pricing):
    with pytest.raises(NotFoundError):
        state_machine.approve(store, 987654, admin_actor, pricing)


def test_pause_and_resume(store, admin_actor, campaign_factory):
    c = campaign_factory(status=CampaignStatus.ACTIVE)
    paused = state_machine.set_active_flag(store, c.id, admin_actor, False)
    assert paused.is_active is False
    assert paused.status == CampaignStatus.ACTIVE
    resumed = state_machine.set_active_flag(store, c.id, admin_actor, True)
    assert resumed.is_active is True


def test_resume_requires_active_status(store, admin_actor, campaign_factory):
    c = campaign_factory(status=CampaignStatus.APPROVED)
    with pytest.raises(ConflictError):
        state_machine.set_active_flag(store, c.id, admin_actor, True)


def test_owner_update_allowed_before_live(store, owner):
    c = _submit(store, owner)
    updated = state_machine.update_campaign(
        store, c.id, owner, {"title": "Renamed", "max_clicks": 50}, Segmentation.of(categories=["food"])
    )
    assert updated.title == "Renamed"
    assert updated.max_clicks == 50
    assert updated.segmentation == Segmentation.of(categories=["food"])


def test_owner_update_blocked_once_live_but_admin_allowed(store, owner, admin_actor, campaign_factory, advertiser):
    c = campaign_factory(status=CampaignStatus.ACTIVE, owner=advertiser)
    with pytest.raises(ConflictError):
        state_machine.update_campaign(store, c.id, owner, {"title": "Nope"})
    updated = state_machine.update_campaign(store, c.id, admin_actor, {"weight": 4.0})
    assert updated.weight == 4.0


def test_update_cannot_touch_status_or_break_window(store, owner):
    c = _submit(store, owner, start_at=datetime(2025, 6, 1, tzinfo=timezone.utc))
    with pytest.raises(ValidationError):
        state_machine.update_campaign(store, c.id, owner, {"status": CampaignStatus.ACTIVE})
    with pytest.raises(ValidationError):
        state_machine.update_campaign(store, c.id, owner, {"end_at": datetime(2025, 5, 1, tzinfo=timezone.utc)})


def test_stale_transition_fails_with_conflict(store, owner, admin_actor, pricing, db_session):
    from adserver.models.db import Campaign
    from sqlalchemy import update

    c = _submit(store, owner)
    loaded = store.require(c.id)
    # Another request rejects the campaign behind this session's back
    db_session.execute(
        update(Campaign).where(Campaign.id == c.id).values(status=CampaignStatus.REJECTED)
        .execution_options(synchronize_session=False)
    )
    db_session.commit()
    loaded.status = CampaignStatus.SUBMITTED  # stale in-memory view
    with pytest.raises(ConflictError):
        state_machine._transition(
            store, loaded, {CampaignStatus.SUBMITTED}, CampaignStatus.UNDER_REVIEW, "review"
        )
    assert store.get(c.id, fresh=True).status == CampaignStatus.REJECTED


def test_admin_cannot_lower_cap_below_recorded_usage(store, admin_actor, campaign_factory):
    c = campaign_factory(max_impressions=100, max_clicks=20)
    c.impressions, c.clicks = 10, 3
    store.commit()
    with pytest.raises(ValidationError):
        state_machine.update_campaign(store, c.id, admin_actor, {"max_impressions": 5})
    with pytest.raises(ValidationError):
        state_machine.update_campaign(store, c.id, admin_actor, {"max_clicks": 2})
    stored = store.get(c.id, fresh=True)
    assert (stored.max_impressions, stored.max_clicks) == (100, 20)

    updated = state_machine.update_campaign(store, c.id, admin_actor, {"max_impressions": 10, "max_clicks": None})
    assert updated.max_impressions == 10
    assert updated.max_clicks is None


def test_cap_guard_holds_when_usage_grows_after_the_check(store, admin_actor, campaign_factory):
    c = campaign_factory(max_impressions=100)
    loaded = store.require(c.id)
    assert loaded.impressions == 0
    other = TestingSessionLocal()
    try:
        other.execute(
            update(Campaign).where(Campaign.id == c.id).values(impressions=8)
            .execution_options(synchronize_session=False)
        )
        other.commit()
    finally:
        other.close()
    with pytest.raises(ValidationError):
        state_machine.update_campaign(store, c.id, admin_actor, {"max_impressions": 5})
    stored = store.get(c.id, fresh=True)
    assert (stored.impressions, stored.max_impressions) == (8, 100)


def test_update_rejects_null_for_required_fields(store, owner):
    c = _submit(store, owner)
    for field in ("title", "redirect_url", "weight", "placement", "open_in_new_tab", "image_alt"):
        with pytest.raises(ValidationError):
            state_machine.update_campaign(store, c.id, owner, {field: None})
    assert store.get(c.id, fresh=True).title == "Farmers market"


def test_owner_edit_loses_to_concurrent_activation(store, owner, campaign_factory, advertiser):
    c = campaign_factory(status=CampaignStatus.AWAITING_PAYMENT, owner=advertiser)
    loaded = store.require(c.id)
    assert loaded.status == CampaignStatus.AWAITING_PAYMENT
    other = TestingSessionLocal()
    try:
        other.execute(
            update(Campaign).where(Campaign.id == c.id).values(status=CampaignStatus.ACTIVE, is_active=True)
            .execution_options(synchronize_session=False)
        )
        other.commit()
    finally:
        other.close()
    with pytest.raises(ConflictError):
        state_machine.update_campaign(store, c.id, owner, {"max_clicks": 7})
    stored = store.get(c.id, fresh=True)
    assert stored.status == CampaignStatus.ACTIVE
    assert stored.max_clicks is None
