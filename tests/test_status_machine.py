import pytest

from referral_hub.services.status_machine import (
    REFERRAL_TRANSITIONS,
    campaign_delta,
    check_campaign_transition,
    check_referral_transition,
    check_reward_transition,
    customer_delta,
)
from referral_hub.utils.errors import InvalidTransition, ValidationError


@pytest.mark.parametrize(
    "old,new",
    [
        ("pending", "clicked"),
        ("pending", "converted"),
        ("clicked", "converted"),
        ("clicked", "expired"),
        ("converted", "rewarded"),
    ],
)
def test_allowed_referral_moves(old, new):
    check_referral_transition(old, new)


@pytest.mark.parametrize(
    "old,new",
    [
        ("rewarded", "pending"),
        ("converted", "pending"),
        ("clicked", "pending"),
        ("expired", "clicked"),
        ("rejected", "converted"),
        ("converted", "converted"),
    ],
)
def test_refused_referral_moves(old, new):
    with pytest.raises(InvalidTransition):
        check_referral_transition(old, new)


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError):
        check_referral_transition("pending", "lost")


def test_terminal_referral_states_have_no_exits():
    for status in ("rewarded", "expired", "rejected"):
        assert not REFERRAL_TRANSITIONS[status]


def test_creation_deltas():
    assert campaign_delta(None, "pending") == {"pendingReferrals": 1, "totalReferrals": 1}
    assert customer_delta(None, "clicked") == {"pendingReferrals": 1, "totalReferrals": 1}


def test_click_moves_campaign_counter_but_not_customer_counter():
    assert campaign_delta("pending", "clicked") == {"pendingReferrals": -1, "clickedReferrals": 1}
    assert customer_delta("pending", "clicked") == {}


def test_conversion_and_reward_deltas():
    assert campaign_delta("clicked", "converted") == {"clickedReferrals": -1, "successfulReferrals": 1}
    assert customer_delta("clicked", "converted") == {"pendingReferrals": -1, "successfulReferrals": 1}
    # converted and rewarded share the successful counter
    assert campaign_delta("converted", "rewarded") == {}


def test_expiry_only_releases_the_open_counter():
    assert campaign_delta("clicked", "expired") == {"clickedReferrals": -1}
    assert customer_delta("pending", "expired") == {"pendingReferrals": -1}


def test_reward_and_campaign_tables():
    check_reward_transition("issued", "claimed")
    with pytest.raises(InvalidTransition):
        check_reward_transition("claimed", "issued")
    check_campaign_transition("paused", "active")
    with pytest.raises(InvalidTransition):
        check_campaign_transition("ended", "active")
