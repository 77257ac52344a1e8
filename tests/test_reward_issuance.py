import pytest

from referral_hub.db.mongo import CAMPAIGNS, CUSTOMERS, REWARDS
from referral_hub.db.transaction import UnitOfWork
from referral_hub.services.reward_issuance import compose_reward_notice
from referral_hub.utils.errors import (
    AlreadyClaimed,
    Expired,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)


@pytest.fixture
async def converted(ledger, business, campaign, referrer):
    referral = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Alice", "email": "a@x.com"}
    )
    return await ledger.transition_status(business["_id"], referral["_id"], "converted")


def _reward(outcome, role):
    return next(r for r in outcome.rewards if r["recipientType"] == role)


async def test_issue_is_idempotent_per_recipient_type(db, ledger, campaign, converted):
    again = await ledger.issuer.issue(
        converted.referral, campaign, "referrer", converted.referral["referrer"], UnitOfWork()
    )
    assert again["_id"] == _reward(converted, "referrer")["_id"]
    assert await db[REWARDS].count_documents({"referral": converted.referral["_id"]}) == 2


async def test_issue_needs_a_configured_rule(db, ledger, campaign, converted):
    bare = {**campaign, "refereeReward": None}
    await db[REWARDS].delete_many({"recipientType": "referee"})
    with pytest.raises(ValidationError):
        await ledger.issuer.issue(converted.referral, bare, "referee", converted.customer["_id"], UnitOfWork())


async def test_claim(ledger, referrer, converted, clock):
    reward = _reward(converted, "referrer")
    claimed = await ledger.issuer.claim(reward["_id"], referrer["_id"], {"claim_location": "Front desk"})
    assert claimed["status"] == "claimed"
    assert claimed["claimedAt"] == clock()
    assert claimed["claimDetails"] == {"claimLocation": "Front desk"}

    with pytest.raises(AlreadyClaimed):
        await ledger.issuer.claim(reward["_id"], referrer["_id"])


async def test_only_the_recipient_can_claim(ledger, converted):
    reward = _reward(converted, "referrer")
    with pytest.raises(Forbidden):
        await ledger.issuer.claim(reward["_id"], converted.customer["_id"])


async def test_claim_after_expiry_marks_the_reward_expired(db, ledger, referrer, converted, clock):
    reward = _reward(converted, "referrer")
    clock.advance(days=91)
    with pytest.raises(Expired):
        await ledger.issuer.claim(reward["_id"], referrer["_id"])
    assert (await db[REWARDS].find_one({"_id": reward["_id"]}))["status"] == "expired"


async def test_campaign_expiry_days_drive_reward_expiry(db, ledger, business, campaign, referrer, clock):
    await db[CAMPAIGNS].update_one({"_id": campaign["_id"]}, {"$set": {"rewardExpirationDays": 7}})
    referral = await ledger.create_referral(
        business["_id"], campaign["_id"], referrer["_id"], referee={"name": "Gus", "email": "gus@x.com"}
    )
    outcome = await ledger.transition_status(business["_id"], referral["_id"], "converted")
    reward = _reward(outcome, "referrer")
    assert (reward["expiresAt"] - clock()).days == 7


async def test_verify_code_returns_the_issued_snapshot(db, ledger, business, campaign, converted):
    reward = _reward(converted, "referrer")
    await db[CAMPAIGNS].update_one(
        {"_id": campaign["_id"]},
        {"$set": {"referrerReward": {"type": "percentage", "value": 50, "description": "Half off"}}},
    )
    found = await ledger.issuer.verify_code(reward["code"].lower(), business["_id"])
    assert (found["type"], found["value"], found["description"]) == ("fixed", 10, "$10 off")


async def test_verify_code_rejects_unknown_and_used_codes(ledger, business, referrer, converted):
    with pytest.raises(NotFound):
        await ledger.issuer.verify_code("F00000000", business["_id"])
    with pytest.raises(ValidationError):
        await ledger.issuer.verify_code("   ", business["_id"])

    reward = _reward(converted, "referrer")
    await ledger.issuer.claim(reward["_id"], referrer["_id"])
    with pytest.raises(AlreadyClaimed):
        await ledger.issuer.verify_code(reward["code"], business["_id"])


async def test_manual_status_changes(ledger, business, converted):
    reward = _reward(converted, "referee")
    updated = await ledger.issuer.update_status(business["_id"], reward["_id"], "claimed", {"notes": "in store"})
    assert updated["claimMethod"] == "manual"
    assert updated["claimDetails"] == {"notes": "in store"}
    with pytest.raises(InvalidTransition):
        await ledger.issuer.update_status(business["_id"], reward["_id"], "issued")


async def test_expire_stale_rewards(db, ledger, business, converted, clock):
    assert await ledger.issuer.expire_stale(business["_id"]) == 0
    clock.advance(days=91)
    assert await ledger.issuer.expire_stale(business["_id"]) == 2
    assert await db[REWARDS].count_documents({"status": "expired"}) == 2


async def test_notify_recipient_records_the_outcome(db, ledger, converted, notifier):
    reward = _reward(converted, "referrer")
    entry = await ledger.issuer.notify_recipient(reward, "reminder", notifier, "Corner Shop", background=False)
    assert entry["status"] == "sent"
    assert notifier.sent[-1]["address"] == "rita@x.com"
    assert notifier.sent[-1]["subject"] == "Reminder: You Have an Unclaimed Reward"
    stored = await db[REWARDS].find_one({"_id": reward["_id"]})
    assert stored["notificationsSent"][-1]["type"] == "reminder"


async def test_notify_recipient_without_email(db, ledger, converted, notifier):
    reward = _reward(converted, "referrer")
    await db[CUSTOMERS].update_one({"_id": reward["recipient"]}, {"$unset": {"email": ""}})
    with pytest.raises(ValidationError):
        await ledger.issuer.notify_recipient(reward, "issued", notifier, "Corner Shop", background=False)
    assert await ledger.issuer.notify_recipient(reward, "issued", notifier, "Corner Shop") is None


def test_compose_reward_notice():
    reward = {"type": "fixed", "value": 10, "code": "FABCDEFGH", "description": "$10 off"}
    subject, body = compose_reward_notice("issued", reward, "Corner Shop")
    assert subject == "Your Reward is Ready!"
    assert "Code: FABCDEFGH" in body
    assert compose_reward_notice("expired", reward, "Corner Shop", message="Custom")[1] == "Custom"
    with pytest.raises(ValidationError):
        compose_reward_notice("birthday", reward, "Corner Shop")
