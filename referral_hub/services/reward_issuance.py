# referral_hub/services/reward_issuance.py
"""
Turns a campaign reward rule into a concrete, claimable Reward, at most once
per (referral, recipientType), and owns the claim lifecycle afterwards.
"""
import logging
import os
from typing import Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument

from ..db.mongo import CUSTOMERS, REWARDS
from ..db.transaction import UnitOfWork
from ..models.reward_model import ClaimDetails, NotificationLog, RewardModel
from ..utils.codes import as_oid, normalize_code, reward_code
from ..utils.datetime_utils import Clock, days_from, now_utc
from ..utils.errors import AlreadyClaimed, Expired, Forbidden, InvalidTransition, NotFound, ValidationError
from . import notify
from .email_service import NotificationResult
from .status_machine import check_reward_transition

logger = logging.getLogger(__name__)

DEFAULT_REWARD_EXPIRATION_DAYS = int(os.getenv("DEFAULT_REWARD_EXPIRATION_DAYS", "90"))

RULE_FIELD = {"referrer": "referrerReward", "referee": "refereeReward"}

# Issued rewards that have no expiry are claimable forever
_NOT_EXPIRED = lambda now: {"$or": [{"expiresAt": None}, {"expiresAt": {"$gte": now}}]}  # noqa: E731


def _describe(reward: dict) -> str:
    lines = [f"Type: {reward.get('type')}", f"Value: {reward.get('value')}"]
    if reward.get("description"):
        lines.append(f"Description: {reward['description']}")
    return "\n".join(lines)


def compose_reward_notice(
    notice_type: str,
    reward: dict,
    business_name: str,
    recipient_name: Optional[str] = None,
    message: Optional[str] = None,
) -> Tuple[str, str]:
    """
    (subject, body) for one of issued / reminder / expiring_soon / expired.
    """
    hello = f"Hello {recipient_name},\n\n" if recipient_name else ""
    details = _describe(reward)
    code = reward.get("code")

    if notice_type == "issued":
        subject = "Your Reward is Ready!"
        body = (
            f"Congratulations! Your reward from {business_name} is now available.\n\n"
            f"Reward Details:\n{details}\nCode: {code}\n\n"
            "To claim your reward, please visit our store or website and present this code.\n\n"
            "Thank you for your referral!"
        )
    elif notice_type == "reminder":
        subject = "Reminder: You Have an Unclaimed Reward"
        body = (
            f"{hello}This is a friendly reminder that you have an unclaimed reward from {business_name}.\n\n"
            f"Reward Details:\n{details}\nCode: {code}\n\n"
            "To claim your reward, please visit our store or website and present this code.\n\nThank you!"
        )
    elif notice_type == "expiring_soon":
        expires = reward.get("expiresAt")
        when = expires.strftime("%Y-%m-%d") if expires else "soon"
        subject = "Your Reward is Expiring Soon"
        body = (
            f"{hello}Your reward from {business_name} is expiring soon.\n\n"
            f"Reward Details:\n{details}\nCode: {code}\n\nExpiration Date: {when}\n\n"
            "To claim your reward, please visit our store or website and present this code before it expires.\n\n"
            "Thank you!"
        )
    elif notice_type == "expired":
        subject = "Your Reward Has Expired"
        body = (
            f"{hello}We're sorry to inform you that your reward from {business_name} has expired.\n\n"
            f"Reward Details:\n{details}\n\n"
            "If you would like to earn more rewards, consider referring more friends to our business.\n\n"
            "Thank you!"
        )
    else:
        raise ValidationError("Invalid notification type")

    return subject, message or body


class RewardIssuer:
    def __init__(self, db, clock: Clock = now_utc):
        self.db = db
        self.clock = clock
        self.rewards = db[REWARDS]
        self.customers = db[CUSTOMERS]

    # ── issuance ──────────────────────────────────────────────────────────────
    async def issue(
        self,
        referral: dict,
        campaign: dict,
        recipient_type: str,
        recipient_id: ObjectId,
        uow: UnitOfWork,
    ) -> dict:
        """
        Upsert semantics: an existing reward for (referral, recipient_type) is
        returned unchanged. A concurrent duplicate hits the unique index and
        the enclosing unit of work is retried, which then finds the winner.
        """
        if recipient_type not in RULE_FIELD:
            raise ValidationError(f"Invalid recipient type: {recipient_type}")

        existing = await self.rewards.find_one(
            {"referral": referral["_id"], "recipientType": recipient_type},
            session=uow.session,
        )
        if existing:
            return existing

        rule = campaign.get(RULE_FIELD[recipient_type]) or {}
        if rule.get("value") is None:
            raise ValidationError(f"Campaign has no {recipient_type} reward configured")

        now = self.clock()
        reward_type = rule.get("type") or "fixed"
        days = campaign.get("rewardExpirationDays") or DEFAULT_REWARD_EXPIRATION_DAYS
        doc = RewardModel.build(
            business=referral["business"],
            campaign=campaign["_id"],
            referral=referral["_id"],
            recipient=recipient_id,
            recipient_type=recipient_type,
            type=reward_type,
            value=rule["value"],
            description=rule.get("description"),
            code=reward_code(reward_type),
            status="issued",
            issued_at=now,
            expires_at=days_from(now, days),
            created_at=now,
            updated_at=now,
        ).to_mongo()

        result = await self.rewards.insert_one(doc, session=uow.session)
        doc["_id"] = result.inserted_id
        reward_id = result.inserted_id

        async def _undo():
            await self.rewards.delete_one({"_id": reward_id})

        uow.on_rollback(_undo)
        logger.info(
            "Issued %s reward %s (%s %s) for referral %s",
            recipient_type, doc["code"], reward_type, rule["value"], referral["_id"],
        )
        return doc

    # ── redemption ────────────────────────────────────────────────────────────
    async def _mark_expired(self, reward: dict, now) -> None:
        await self.rewards.update_one(
            {"_id": reward["_id"], "status": "issued"},
            {"$set": {"status": "expired", "updatedAt": now}},
        )
        reward["status"] = "expired"

    async def _ensure_redeemable(self, reward: dict, now) -> None:
        """
        Raises for anything but an issued, unexpired reward. An issued reward
        found past its expiry is marked expired on the way out.
        """
        status = reward.get("status")
        if status == "claimed":
            raise AlreadyClaimed("Reward has already been claimed")
        if status == "expired":
            raise Expired("Reward has expired")
        if status == "cancelled":
            raise InvalidTransition("Reward has been cancelled")
        if status != "issued":
            raise InvalidTransition("Reward has not been issued yet")

        expires_at = reward.get("expiresAt")
        if expires_at is not None and expires_at < now:
            await self._mark_expired(reward, now)
            raise Expired("Reward has expired")

    async def claim(self, reward_id, claimant_customer_id, claim_details: Optional[dict] = None) -> dict:
        reward = await self.rewards.find_one({"_id": as_oid(reward_id, "reward id")})
        if not reward:
            raise NotFound("Reward not found")
        if reward["recipient"] != as_oid(claimant_customer_id, "customer id"):
            raise Forbidden("Not authorized to claim this reward")

        now = self.clock()
        await self._ensure_redeemable(reward, now)

        details = ClaimDetails.build(**(claim_details or {})).to_mongo()
        updated = await self.rewards.find_one_and_update(
            {"_id": reward["_id"], "status": "issued", **_NOT_EXPIRED(now)},
            {"$set": {
                "status": "claimed",
                "claimedAt": now,
                "claimDetails": details,
                "updatedAt": now,
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            # someone else moved it first; report what it is now
            fresh = await self.rewards.find_one({"_id": reward["_id"]})
            if fresh:
                await self._ensure_redeemable(fresh, now)
            raise InvalidTransition("Reward changed while it was being claimed")

        logger.info("Reward %s claimed by %s", updated["code"], claimant_customer_id)
        return updated

    async def verify_code(self, code: str, business_id) -> dict:
        norm = normalize_code(code)
        if not norm:
            raise ValidationError("Please provide a reward code")
        reward = await self.rewards.find_one({"code": norm, "business": as_oid(business_id, "business id")})
        if not reward:
            raise NotFound("Invalid reward code")
        await self._ensure_redeemable(reward, self.clock())
        return reward

    # ── administration ────────────────────────────────────────────────────────
    async def update_status(self, business_id, reward_id, new_status: str, claim_details: Optional[dict] = None) -> dict:
        reward = await self.rewards.find_one(
            {"_id": as_oid(reward_id, "reward id"), "business": as_oid(business_id, "business id")}
        )
        if not reward:
            raise NotFound("Reward not found")
        check_reward_transition(reward.get("status"), new_status)

        now = self.clock()
        update = {"status": new_status, "updatedAt": now}
        if new_status == "issued":
            if not reward.get("issuedAt"):
                update["issuedAt"] = now
            if not reward.get("expiresAt"):
                update["expiresAt"] = days_from(now, DEFAULT_REWARD_EXPIRATION_DAYS)
        if new_status == "claimed":
            update["claimedAt"] = now
            update["claimMethod"] = "manual"
            if claim_details:
                update["claimDetails"] = ClaimDetails.build(**claim_details).to_mongo()

        updated = await self.rewards.find_one_and_update(
            {"_id": reward["_id"], "status": reward.get("status")},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise InvalidTransition("Reward status changed concurrently, please retry")
        logger.info("Reward %s moved %s -> %s", reward["_id"], reward.get("status"), new_status)
        return updated

    async def expire_stale(self, business_id=None) -> int:
        now = self.clock()
        query = {"status": "issued", "expiresAt": {"$lt": now}}
        if business_id is not None:
            query["business"] = as_oid(business_id, "business id")
        result = await self.rewards.update_many(query, {"$set": {"status": "expired", "updatedAt": now}})
        if result.modified_count:
            logger.info("Expired %d stale rewards", result.modified_count)
        return result.modified_count

    # ── notifications ─────────────────────────────────────────────────────────
    async def record_notification(self, reward_id: ObjectId, notice_type: str, result: NotificationResult) -> dict:
        entry = NotificationLog(
            type=notice_type,
            method="email",
            sent_at=self.clock(),
            status="sent" if result.success else "failed",
        ).to_mongo()
        await self.rewards.update_one({"_id": reward_id}, {"$push": {"notificationsSent": entry}})
        return entry

    async def notify_recipient(
        self,
        reward: dict,
        notice_type: str,
        notifier,
        business_name: str,
        message: Optional[str] = None,
        background: bool = True,
    ) -> Optional[dict]:
        """
        Email the reward's recipient and append the outcome to
        notificationsSent. In background mode the send is detached and this
        returns None straight away.
        """
        recipient = await self.customers.find_one({"_id": reward["recipient"]}, {"name": 1, "email": 1})
        if not recipient:
            raise NotFound("Recipient not found")
        if not recipient.get("email"):
            if background:
                return None
            raise ValidationError("Recipient does not have an email address")

        subject, body = compose_reward_notice(
            notice_type, reward, business_name, recipient.get("name"), message
        )

        async def _record(result: NotificationResult) -> None:
            await self.record_notification(reward["_id"], notice_type, result)

        if background:
            notify.send_bg(notifier, recipient["email"], subject, body, on_result=_record, from_name=business_name)
            return None

        result = await notify.send_guarded(notifier, recipient["email"], subject, body, from_name=business_name)
        return await self.record_notification(reward["_id"], notice_type, result)
