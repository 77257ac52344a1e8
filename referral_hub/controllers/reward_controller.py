# referral_hub/controllers/reward_controller.py
from typing import Optional

from pymongo import DESCENDING

from ..db.mongo import REWARDS, get_db
from ..schemas.common import CountResponse, DataResponse, ListResponse, paged
from ..schemas.reward_schema import (
    ClaimRequest,
    NotificationLogOut,
    NotifyRequest,
    NotifyResponse,
    RewardOut,
    RewardStatusUpdate,
    VerifyRequest,
)
from ..services.email_service import get_email_notifier
from ..services.reward_issuance import RewardIssuer
from ..utils.codes import as_oid
from ..utils.errors import NotFound, ValidationError

REWARD_STATUSES = ("pending", "issued", "claimed", "expired", "cancelled")


def get_issuer() -> RewardIssuer:
    return RewardIssuer(get_db())


async def _reward_or_404(business: dict, reward_id: str) -> dict:
    reward = await get_db()[REWARDS].find_one(
        {"_id": as_oid(reward_id, "reward id"), "business": business["_id"]}
    )
    if not reward:
        raise NotFound("Reward not found")
    return reward


async def list_rewards(
    business: dict,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    recipient_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
) -> ListResponse[RewardOut]:
    query: dict = {"business": business["_id"]}
    if status:
        if status not in REWARD_STATUSES:
            raise ValidationError(f"Invalid reward status: {status}")
        query["status"] = status
    if recipient_id:
        query["recipient"] = as_oid(recipient_id, "customer id")
    if campaign_id:
        query["campaign"] = as_oid(campaign_id, "campaign id")

    page, limit = max(1, page), max(1, min(limit, 100))
    coll = get_db()[REWARDS]
    total = await coll.count_documents(query)
    docs = await coll.find(query).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit).to_list(length=limit)
    return ListResponse(**paged([RewardOut.model_validate(d) for d in docs], total, page, limit))


async def list_customer_rewards(customer: dict) -> ListResponse[RewardOut]:
    docs = await get_db()[REWARDS].find({"recipient": customer["_id"]}).sort("createdAt", DESCENDING).to_list(length=None)
    return ListResponse(count=len(docs), data=[RewardOut.model_validate(d) for d in docs])


async def get_reward(business: dict, reward_id: str) -> DataResponse[RewardOut]:
    return DataResponse(data=RewardOut.model_validate(await _reward_or_404(business, reward_id)))


async def verify_reward(business: dict, data: VerifyRequest) -> DataResponse[RewardOut]:
    reward = await get_issuer().verify_code(data.code, business["_id"])
    return DataResponse(data=RewardOut.model_validate(reward))


async def claim_reward(customer: dict, reward_id: str, data: Optional[ClaimRequest]) -> DataResponse[RewardOut]:
    details = data.claim_details.model_dump(exclude_none=True) if data and data.claim_details else None
    reward = await get_issuer().claim(reward_id, customer["_id"], details)
    return DataResponse(data=RewardOut.model_validate(reward))


async def update_reward_status(business: dict, reward_id: str, data: RewardStatusUpdate) -> DataResponse[RewardOut]:
    issuer = get_issuer()
    details = data.claim_details.model_dump(exclude_none=True) if data.claim_details else None
    reward = await issuer.update_status(business["_id"], reward_id, data.status, details)

    if data.status == "issued" and (business.get("settings") or {}).get("emailNotifications") is not False:
        await issuer.notify_recipient(
            reward, "issued", get_email_notifier(), business.get("businessName"), background=True
        )
    return DataResponse(data=RewardOut.model_validate(reward))


async def send_reward_notification(business: dict, reward_id: str, data: NotifyRequest) -> NotifyResponse:
    reward = await _reward_or_404(business, reward_id)
    entry = await get_issuer().notify_recipient(
        reward,
        data.type,
        get_email_notifier(),
        business.get("businessName"),
        message=data.message,
        background=False,
    )
    sent = entry["status"] == "sent"
    return NotifyResponse(
        success=sent,
        notification=NotificationLogOut.model_validate(entry),
        message="Notification sent" if sent else "Notification could not be delivered",
    )


async def expire_rewards(business: dict) -> CountResponse:
    count = await get_issuer().expire_stale(business["_id"])
    return CountResponse(count=count, message=f"{count} rewards expired")
