import asyncio
import re
from types import SimpleNamespace

import pytest
from pymongo.errors import OperationFailure
from twilio.base.exceptions import TwilioException

from referral_hub.db.mongo import CAMPAIGNS, CUSTOMERS, REFERRALS, REWARDS
from referral_hub.db.transaction import UnitOfWork
from referral_hub.services import notify
from referral_hub.services.counters import CAMPAIGN_PREFIX, apply_delta
from referral_hub.services.email_service import SmsNotifier
from referral_hub.services.referral_ledger import LedgerOutcome, ReferralLedger
from referral_hub.utils.errors import (
    AlreadyConverted,
    InvalidTransition,
    NotFound,
    StorageError,
    ValidationError,
)

ALICE = {"name": "Alice", "email": "A@x.com"}


class FailingWrites:
    """Collection wrapper whose chosen write methods fail like a dropped primary."""

    def __init__(self, inner, *methods):
        self._inner = inner
        self._methods = set(methods)

    def __getattr__(self, name):
        if name in self._methods:
            async def _fail(*args, **kwargs):
                raise OperationFailure("simulated storage outage")
            return _fail
        return getattr(self._inner, name)


class FakeTwilio:
    """Stands in for twilio.rest.Client: records messages.create calls."""

    def __init__(self, error=None):
        self.messages = self
        self.created = []
        self._error = error

    def create(self, **kwargs):
        if self._error:
            raise self._error
        self.created.append(kwargs)
        return SimpleNamespace(sid=f"SM{len(self.created):032d}")


async def test_alice_scenario(db, ledger, business, campaign, referrer, stats, notifier):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    assert re.fullmatch(r"[A-Z0-9]{6}", referral["referralCode"])
    assert referral["referee"] == {"name": "Alice", "email": "a@x.com", "convertedToCustomer": False}
    c = await stats.campaign(campaign["_id"])
    assert (c["totalReferrals"], c["pendingReferrals"]) == (1, 1)

    clicked = await ledger.track_click(referral["referralCode"])
    assert clicked["status"] == "clicked"
    c = await stats.campaign(campaign["_id"])
    assert (c["pendingReferrals"], c["clickedReferrals"]) == (0, 1)
    # customers count a clicked referral as still pending
    assert (await stats.customer(referrer["_id"]))["pendingReferrals"] == 1

    outcome = await ledger.transition_status(business["_id"], referral["_id"], "converted")
    assert outcome.referral["status"] == "converted"
    alice = outcome.customer
    assert alice["email"] == "a@x.com"
    assert alice["source"] == "referral"
    assert alice["referredBy"] == referrer["_id"]
    assert "referred" in alice["tags"]
    assert outcome.referral["referee"]["convertedToCustomer"] is True
    assert outcome.referral["referee"]["customerId"] == alice["_id"]

    by_role = {r["recipientType"]: r for r in outcome.rewards}
    assert by_role["referrer"]["value"] == 10
    assert by_role["referrer"]["recipient"] == referrer["_id"]
    assert by_role["referee"]["value"] == 5
    assert by_role["referee"]["recipient"] == alice["_id"]
    assert all(r["status"] == "issued" for r in outcome.rewards)
    assert all(re.fullmatch(r"F[A-Z0-9]{8}", r["code"]) for r in outcome.rewards)

    c = await stats.campaign(campaign["_id"])
    assert (c["successfulReferrals"], c["clickedReferrals"], c["pendingReferrals"]) == (1, 0, 0)
    r = await stats.customer(referrer["_id"])
    assert (r["successfulReferrals"], r["pendingReferrals"]) == (1, 0)

    await ledger.transition_status(business["_id"], referral["_id"], "rewarded")
    c = await stats.campaign(campaign["_id"])
    assert c["totalRewards"] == 1
    assert c["totalRewardsValue"] == 15
    assert c["successfulReferrals"] == 1
    assert (await stats.customer(referrer["_id"]))["totalRewardsEarned"] == 1

    await notify.drain()
    addresses = [m["address"] for m in notifier.sent]
    assert "a@x.com" in addresses
    assert "rita@x.com" in addresses


async def test_rewarded_cannot_go_back_to_pending(ledger, business, campaign, referrer):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    await ledger.transition_status(business["_id"], referral["_id"], "converted")
    await ledger.transition_status(business["_id"], referral["_id"], "rewarded")
    with pytest.raises(InvalidTransition):
        await ledger.transition_status(business["_id"], referral["_id"], "pending")


async def test_nothing_leaves_expired_or_rejected(ledger, business, campaign, referrer):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    await ledger.transition_status(business["_id"], referral["_id"], "rejected", {"notes": "spam"})
    for target in ("pending", "clicked", "converted", "rewarded"):
        with pytest.raises(InvalidTransition):
            await ledger.transition_status(business["_id"], referral["_id"], target)


async def test_repeated_clicks_count_once_on_campaign(ledger, business, campaign, referrer, stats):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    await ledger.track_click(referral["referralCode"].lower())
    await ledger.track_click(str(referral["_id"]))
    last = await ledger.track_click(referral["referralCode"])
    assert last["clickCount"] == 3
    c = await stats.campaign(campaign["_id"])
    assert (c["clickedReferrals"], c["pendingReferrals"]) == (1, 0)


async def test_click_on_unknown_or_expired_link(ledger, business, campaign, referrer, clock):
    with pytest.raises(NotFound):
        await ledger.track_click("ZZZZZZ")
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    clock.advance(days=31)
    with pytest.raises(NotFound):
        await ledger.track_click(referral["referralCode"])


async def test_duplicate_transition_does_not_double_count(ledger, business, campaign, referrer, stats):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    await ledger.transition_status(business["_id"], referral["_id"], "converted")
    with pytest.raises(InvalidTransition):
        await ledger.transition_status(business["_id"], referral["_id"], "converted")
    with pytest.raises(AlreadyConverted):
        await ledger.convert_referee(business["_id"], referral["_id"])

    c = await stats.campaign(campaign["_id"])
    assert (c["successfulReferrals"], c["pendingReferrals"]) == (1, 0)
    r = await stats.customer(referrer["_id"])
    assert (r["successfulReferrals"], r["pendingReferrals"]) == (1, 0)


async def test_counters_never_go_negative(db, campaign):
    applied = await apply_delta(db[CAMPAIGNS], campaign["_id"], CAMPAIGN_PREFIX, {"pendingReferrals": -1}, UnitOfWork())
    assert applied == {}
    stats = (await db[CAMPAIGNS].find_one({"_id": campaign["_id"]}))["statistics"]
    assert stats["pendingReferrals"] == 0


async def test_closed_campaign_refuses_new_referrals(db, ledger, business, campaign, referrer):
    await db[CAMPAIGNS].update_one({"_id": campaign["_id"]}, {"$set": {"status": "paused"}})
    with pytest.raises(ValidationError):
        await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    assert await db[REFERRALS].count_documents({}) == 0


async def test_referee_matching_an_existing_customer_is_linked_up_front(db, ledger, business, campaign, referrer):
    referral = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Rita again", "email": "RITA@x.com"}
    )
    assert referral["referee"]["convertedToCustomer"] is True
    assert referral["referee"]["customerId"] == referrer["_id"]


async def test_storage_failure_on_create_leaves_nothing_behind(db, ledger, business, campaign, referrer, stats):
    ledger.customers = FailingWrites(db[CUSTOMERS], "update_one")
    with pytest.raises(StorageError):
        await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)

    assert await db[REFERRALS].count_documents({}) == 0
    c = await stats.campaign(campaign["_id"])
    assert (c["totalReferrals"], c["pendingReferrals"]) == (0, 0)
    r = await stats.customer(referrer["_id"])
    assert (r["totalReferrals"], r["pendingReferrals"]) == (0, 0)


async def test_storage_failure_during_conversion_rolls_back(db, ledger, business, campaign, referrer, stats):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    ledger.issuer.rewards = FailingWrites(db[REWARDS], "insert_one")

    with pytest.raises(StorageError):
        await ledger.transition_status(business["_id"], referral["_id"], "converted")

    stored = await db[REFERRALS].find_one({"_id": referral["_id"]})
    assert stored["status"] == "pending"
    assert stored["referee"]["convertedToCustomer"] is False
    assert "conversionDetails" not in stored
    assert await db[CUSTOMERS].count_documents({}) == 1
    assert await db[REWARDS].count_documents({}) == 0
    c = await stats.campaign(campaign["_id"])
    assert (c["successfulReferrals"], c["pendingReferrals"]) == (0, 1)


async def test_share_link_is_reused(db, ledger, business, campaign, referrer, stats):
    first = await ledger.generate_share_link(business["_id"], campaign["_id"], referrer["_id"])
    second = await ledger.generate_share_link(business["_id"], campaign["_id"], referrer["_id"])
    assert first["referralCode"] == second["referralCode"]
    assert first["referralLink"].endswith(f"?code={first['referralCode']}")
    assert set(first["shareableLinks"]) == {"default", "facebook", "twitter", "whatsapp", "linkedin", "email"}
    assert first["referral"]["sharingMethod"] == "copy"
    assert (await stats.campaign(campaign["_id"]))["totalReferrals"] == 1


async def test_share_referral_converts_with_supplied_details(db, ledger, business, campaign, referrer):
    share = await ledger.generate_share_link(business["_id"], campaign["_id"], referrer["_id"])
    outcome = await ledger.convert_referee(
        business["_id"], share["referral"]["_id"], {"name": "Carol", "email": "carol@x.com"}
    )
    assert outcome.customer["name"] == "Carol"
    assert outcome.referral["referee"]["name"] == "Carol"
    assert len(outcome.rewards) == 2


async def test_converting_without_a_name_is_refused(ledger, business, campaign, referrer):
    share = await ledger.generate_share_link(business["_id"], campaign["_id"], referrer["_id"])
    with pytest.raises(ValidationError):
        await ledger.convert_referee(business["_id"], share["referral"]["_id"])


async def test_share_referral_converts_by_status_change_without_a_referee(
    db, ledger, business, campaign, referrer, stats
):
    share = await ledger.generate_share_link(business["_id"], campaign["_id"], referrer["_id"])
    outcome = await ledger.transition_status(business["_id"], share["referral"]["_id"], "converted")

    assert outcome.referral["status"] == "converted"
    assert outcome.customer is None
    assert "referee" not in outcome.referral
    assert [r["recipientType"] for r in outcome.rewards] == ["referrer"]
    assert outcome.rewards[0]["recipient"] == referrer["_id"]
    assert await db[CUSTOMERS].count_documents({}) == 1
    assert (await stats.campaign(campaign["_id"]))["successfulReferrals"] == 1
    assert (await stats.customer(referrer["_id"]))["successfulReferrals"] == 1

    # the referee can still be linked afterwards and gets their reward then
    late = await ledger.convert_referee(
        business["_id"], share["referral"]["_id"], {"name": "Carol", "email": "carol@x.com"}
    )
    assert late.referral["status"] == "converted"
    assert [r["recipientType"] for r in late.rewards] == ["referee"]
    assert await db[REWARDS].count_documents({"referral": share["referral"]["_id"]}) == 2


async def test_concurrent_referrals_lose_no_counter_updates(ledger, business, campaign, referrer, stats):
    n = 8
    created = await asyncio.gather(*[
        ledger.create_referral(
            business["_id"], campaign["_id"], referrer["_id"], referee={"name": f"Friend {i}"}
        )
        for i in range(n)
    ])
    assert len({r["referralCode"] for r in created}) == n

    c = await stats.campaign(campaign["_id"])
    assert (c["totalReferrals"], c["pendingReferrals"]) == (n, n)
    r = await stats.customer(referrer["_id"])
    assert (r["totalReferrals"], r["pendingReferrals"]) == (n, n)


async def test_concurrent_conversions_issue_one_reward_per_recipient(db, ledger, business, campaign, referrer, stats):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)

    results = await asyncio.gather(
        ledger.transition_status(business["_id"], referral["_id"], "converted"),
        ledger.transition_status(business["_id"], referral["_id"], "converted"),
        return_exceptions=True,
    )
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidTransition)

    rewards = await db[REWARDS].find({"referral": referral["_id"]}).to_list(None)
    assert sorted(r["recipientType"] for r in rewards) == ["referee", "referrer"]
    assert await db[CUSTOMERS].count_documents({"email": "a@x.com"}) == 1
    c = await stats.campaign(campaign["_id"])
    assert (c["successfulReferrals"], c["pendingReferrals"]) == (1, 0)


async def test_convert_by_code(ledger, business, campaign, referrer):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    outcome = await ledger.convert_by_code(business["_id"], f" {referral['referralCode'].lower()} ")
    assert outcome.referral["_id"] == referral["_id"]
    with pytest.raises(NotFound):
        await ledger.convert_by_code(business["_id"], "NOPE00")


async def test_public_conversion(db, ledger, campaign, referrer, stats):
    outcome = await ledger.convert_public(campaign["_id"], referrer["_id"], "Bob", "Bob@x.com")
    assert outcome.referral["status"] == "converted"
    assert outcome.referral["clickCount"] == 1
    assert outcome.referral["conversionDetails"]["conversionType"] == "signup"
    assert outcome.customer["email"] == "bob@x.com"
    c = await stats.campaign(campaign["_id"])
    assert (c["totalReferrals"], c["clickedReferrals"], c["successfulReferrals"]) == (1, 0, 1)

    with pytest.raises(ValidationError):
        await ledger.convert_public(campaign["_id"], referrer["_id"], "Bob", "bob@x.com")


async def test_public_conversion_reuses_the_open_invitation(db, ledger, business, campaign, referrer):
    invited = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Dana", "email": "dana@x.com"}
    )
    outcome = await ledger.convert_public(campaign["_id"], referrer["_id"], "Dana", "dana@x.com")
    assert outcome.referral["_id"] == invited["_id"]
    assert await db[REFERRALS].count_documents({}) == 1


async def test_follow_up_by_email(db, ledger, business, campaign, referrer, notifier):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    await notify.drain()
    notifier.sent.clear()

    entry, updated = await ledger.send_follow_up(business["_id"], referral["_id"], "Still keen?", subject="Hi")
    assert entry["status"] == "sent"
    assert notifier.sent == [{"address": "a@x.com", "subject": "Hi", "body": "Still keen?"}]
    assert len(updated["followUps"]) == 1


async def test_follow_up_by_sms_goes_through_twilio(db, clock, notifier, business, campaign, referrer):
    twilio = FakeTwilio()
    sms = SmsNotifier(account_sid=None, auth_token=None, from_number="+15550001111", client=twilio)
    ledger = ReferralLedger(db, clock=clock, notifier=notifier, sms_notifier=sms)
    referral = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Eve", "phone": "+15550109999"}
    )

    entry, updated = await ledger.send_follow_up(business["_id"], referral["_id"], "Ping", method="sms")
    assert entry["status"] == "sent"
    assert twilio.messages.created == [{"body": "Ping", "to": "+15550109999", "from_": "+15550001111"}]
    assert updated["followUps"][0]["method"] == "sms"


async def test_sms_transport_error_is_recorded(db, clock, notifier, business, campaign, referrer):
    sms = SmsNotifier(from_number="+15550001111", client=FakeTwilio(error=TwilioException("number unreachable")))
    ledger = ReferralLedger(db, clock=clock, notifier=notifier, sms_notifier=sms)
    referral = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Eve", "phone": "+15550109999"}
    )

    entry, _ = await ledger.send_follow_up(business["_id"], referral["_id"], "Ping", method="sms")
    assert entry["status"] == "failed"
    assert entry["error"] == "number unreachable"


async def test_follow_up_by_sms_without_credentials_is_recorded_as_failed(ledger, business, campaign, referrer):
    referral = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Eve", "phone": "555 010 9999"}
    )
    entry, updated = await ledger.send_follow_up(business["_id"], referral["_id"], "Ping", method="sms")
    assert entry["status"] == "failed"
    assert entry["error"] == "SMS service is not configured"
    assert updated["followUps"][0]["method"] == "sms"


async def test_follow_up_needs_an_address(ledger, business, campaign, referrer):
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    with pytest.raises(ValidationError):
        await ledger.send_follow_up(business["_id"], referral["_id"], "Ping", method="sms")


async def test_ai_follow_up_falls_back_to_template(monkeypatch, ledger, business, campaign, referrer, notifier):
    from referral_hub.services import openai_service

    monkeypatch.setattr(openai_service, "client", None)
    referral = await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    entry, _ = await ledger.send_follow_up(business["_id"], referral["_id"], method="ai")
    assert entry["method"] == "ai"
    assert "Hi Alice," in entry["message"]


async def test_expire_stale(db, ledger, business, campaign, referrer, clock, stats):
    await ledger.create_referral(business["_id"], campaign["_id"], referrer["_id"], referee=ALICE)
    converted = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Fay", "email": "fay@x.com"}
    )
    await ledger.transition_status(business["_id"], converted["_id"], "converted")

    clock.advance(days=31)
    assert await ledger.expire_stale(business["_id"]) == 1
    assert await ledger.expire_stale(business["_id"]) == 0

    assert await db[REFERRALS].count_documents({"status": "expired"}) == 1
    c = await stats.campaign(campaign["_id"])
    assert (c["totalReferrals"], c["pendingReferrals"], c["successfulReferrals"]) == (2, 0, 1)
    assert (await stats.customer(referrer["_id"]))["pendingReferrals"] == 0


def test_outcomes_do_not_share_a_rewards_list():
    first, second = LedgerOutcome({}), LedgerOutcome({})
    assert first.rewards == () and isinstance(first.rewards, tuple)
    assert first.rewards is second.rewards
