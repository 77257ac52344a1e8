# referral_hub/controllers/campaign_controller.py
import logging
from typing import Optional

from pymongo import DESCENDING, ReturnDocument

from ..db.mongo import BUSINESSES, CAMPAIGNS, REFERRALS, REWARDS, get_db
from ..models.campaign_model import CampaignModel
from ..schemas.campaign_schema import (
    CampaignCreate,
    CampaignOut,
    CampaignPublicOut,
    CampaignStatsOut,
    CampaignStatusUpdate,
    CampaignUpdate,
)
from ..schemas.common import DataResponse, ListResponse, MessageResponse, paged
from ..services.status_machine import CAMPAIGN_CLOSED, check_campaign_transition
from ..utils.codes import as_oid
from ..utils.datetime_utils import now_utc, to_naive_utc
from ..utils.errors import InvalidTransition, NotFound, ValidationError

logger = logging.getLogger(__name__)

# statuses a campaign leaves for good
_FINAL = ("ended", "cancelled")


async def _campaign_or_404(business: dict, campaign_id: str) -> dict:
    campaign = await get_db()[CAMPAIGNS].find_one(
        {"_id": as_oid(campaign_id, "campaign id"), "business": business["_id"]}
    )
    if not campaign:
        raise NotFound("Campaign not found")
    return campaign


def _accepting(campaign: dict) -> bool:
    if campaign.get("status") in CAMPAIGN_CLOSED or campaign.get("active") is False:
        return False
    end_date = campaign.get("endDate")
    return end_date is None or end_date >= now_utc()


async def create_campaign(business: dict, data: CampaignCreate) -> DataResponse[CampaignOut]:
    now = now_utc()
    body = data.model_dump(exclude_none=True)
    for key in ("start_date", "end_date"):
        if key in body:
            body[key] = to_naive_utc(body[key])
    body.setdefault("start_date", now)

    doc = CampaignModel.build(business=business["_id"], created_at=now, updated_at=now, **body).to_mongo()
    result = await get_db()[CAMPAIGNS].insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Campaign %s (%s) created for business %s", doc["_id"], doc["name"], business["_id"])
    return DataResponse(data=CampaignOut.model_validate(doc))


async def list_campaigns(
    business: dict,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
) -> ListResponse[CampaignOut]:
    query: dict = {"business": business["_id"]}
    if status:
        query["status"] = status
    page, limit = max(1, page), max(1, min(limit, 100))
    coll = get_db()[CAMPAIGNS]
    total = await coll.count_documents(query)
    docs = await coll.find(query).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit).to_list(length=limit)
    return ListResponse(**paged([CampaignOut.model_validate(d) for d in docs], total, page, limit))


async def list_active_campaigns(business: dict) -> ListResponse[CampaignOut]:
    now = now_utc()
    docs = await get_db()[CAMPAIGNS].find(
        {
            "business": business["_id"],
            "status": "active",
            "active": True,
            "$or": [{"endDate": None}, {"endDate": {"$gte": now}}],
        }
    ).sort("createdAt", DESCENDING).to_list(length=None)
    return ListResponse(count=len(docs), data=[CampaignOut.model_validate(d) for d in docs])


async def get_campaign(business: dict, campaign_id: str) -> DataResponse[CampaignOut]:
    return DataResponse(data=CampaignOut.model_validate(await _campaign_or_404(business, campaign_id)))


async def update_campaign(business: dict, campaign_id: str, data: CampaignUpdate) -> DataResponse[CampaignOut]:
    campaign = await _campaign_or_404(business, campaign_id)
    if campaign.get("status") in _FINAL:
        raise InvalidTransition(f"Cannot edit a campaign that is {campaign['status']}")

    update = data.model_dump(by_alias=True, exclude_none=True)
    if not update:
        raise ValidationError("No changes provided")
    for key in ("startDate", "endDate"):
        if key in update:
            update[key] = to_naive_utc(update[key])
    start = update.get("startDate", campaign.get("startDate"))
    end = update.get("endDate", campaign.get("endDate"))
    if start and end and end < start:
        raise ValidationError("endDate must be after startDate")
    update["updatedAt"] = now_utc()

    # issued rewards keep their own copy of the rule; only new ones see edits
    updated = await get_db()[CAMPAIGNS].find_one_and_update(
        {"_id": campaign["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return DataResponse(data=CampaignOut.model_validate(updated))


async def update_campaign_status(business: dict, campaign_id: str, data: CampaignStatusUpdate) -> DataResponse[CampaignOut]:
    campaign = await _campaign_or_404(business, campaign_id)
    current = campaign.get("status", "draft")
    check_campaign_transition(current, data.status)

    update = {"status": data.status, "updatedAt": now_utc()}
    if data.status == "active":
        update["active"] = True
    elif data.status in _FINAL:
        update["active"] = False

    updated = await get_db()[CAMPAIGNS].find_one_and_update(
        {"_id": campaign["_id"], "status": current},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidTransition("Campaign status changed concurrently, please retry")
    logger.info("Campaign %s moved %s -> %s", campaign["_id"], current, data.status)
    return DataResponse(data=CampaignOut.model_validate(updated))


async def toggle_campaign(business: dict, campaign_id: str) -> DataResponse[CampaignOut]:
    campaign = await _campaign_or_404(business, campaign_id)
    turning_on = campaign.get("active") is False
    if turning_on and campaign.get("status") in _FINAL:
        raise InvalidTransition(f"Cannot reactivate a campaign that is {campaign['status']}")

    updated = await get_db()[CAMPAIGNS].find_one_and_update(
        {"_id": campaign["_id"]},
        {"$set": {"active": turning_on, "updatedAt": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    return DataResponse(data=CampaignOut.model_validate(updated))


async def delete_campaign(business: dict, campaign_id: str) -> MessageResponse:
    campaign = await _campaign_or_404(business, campaign_id)
    db = get_db()
    if await db[REFERRALS].find_one({"campaign": campaign["_id"]}, {"_id": 1}):
        raise ValidationError("Campaign has referrals; end or cancel it instead")
    await db[CAMPAIGNS].delete_one({"_id": campaign["_id"]})
    logger.info("Campaign %s deleted", campaign["_id"])
    return MessageResponse(message="Campaign deleted")


async def _count_by_status(coll, match: dict) -> dict:
    out: dict = {}
    async for row in coll.aggregate([{"$match": match}, {"$group": {"_id": "$status", "count": {"$sum": 1}}}]):
        out[row["_id"]] = row["count"]
    return out


async def get_campaign_stats(business: dict, campaign_id: str) -> DataResponse[CampaignStatsOut]:
    campaign = await _campaign_or_404(business, campaign_id)
    db = get_db()
    stats = campaign.get("statistics") or {}
    total = stats.get("totalReferrals") or 0
    rate = round((stats.get("successfulReferrals") or 0) / total * 100, 2) if total else 0

    return DataResponse(
        data=CampaignStatsOut(
            statistics=stats,
            conversion_rate=rate,
            referrals_by_status=await _count_by_status(db[REFERRALS], {"campaign": campaign["_id"]}),
            rewards_by_status=await _count_by_status(db[REWARDS], {"campaign": campaign["_id"]}),
        )
    )


async def get_public_campaign(campaign_id: str) -> DataResponse[CampaignPublicOut]:
    db = get_db()
    campaign = await db[CAMPAIGNS].find_one({"_id": as_oid(campaign_id, "campaign id")})
    if not campaign:
        raise NotFound("Campaign not found")
    business = await db[BUSINESSES].find_one({"_id": campaign["business"]}, {"businessName": 1, "active": 1})
    if not business or business.get("active") is False:
        raise NotFound("Campaign not found")

    out = dict(campaign)
    out["businessName"] = business.get("businessName")
    out["acceptingReferrals"] = _accepting(campaign)
    return DataResponse(data=CampaignPublicOut.model_validate(out))
