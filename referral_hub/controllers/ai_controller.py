# referral_hub/controllers/ai_controller.py
from ..db.mongo import CAMPAIGNS, CUSTOMERS, REFERRALS, get_db
from ..schemas.ai_schema import (
    EmailCopy,
    FollowUpDraftRequest,
    FollowUpDraftResponse,
    SharingSuggestions,
    SharingSuggestionsRequest,
    SharingSuggestionsResponse,
)
from ..services import openai_service
from ..utils.codes import as_oid
from ..utils.errors import NotFound
from .referral_controller import get_ledger


async def get_sharing_suggestions(business: dict, data: SharingSuggestionsRequest) -> SharingSuggestionsResponse:
    db = get_db()
    campaign = await db[CAMPAIGNS].find_one({"_id": as_oid(data.campaign_id, "campaign id"), "business": business["_id"]})
    if not campaign:
        raise NotFound("Campaign not found")
    customer = await db[CUSTOMERS].find_one({"_id": as_oid(data.customer_id, "customer id"), "business": business["_id"]})
    if not customer:
        raise NotFound("Customer not found")

    link = data.referral_link
    if not link:
        share = await get_ledger().generate_share_link(business["_id"], campaign["_id"], customer["_id"])
        link = share["referralLink"]

    suggestions = await openai_service.generate_sharing_suggestions(business, campaign, customer, link)
    return SharingSuggestionsResponse(suggestions=SharingSuggestions.model_validate(suggestions))


async def draft_follow_up(business: dict, data: FollowUpDraftRequest) -> FollowUpDraftResponse:
    db = get_db()
    referral = await db[REFERRALS].find_one({"_id": as_oid(data.referral_id, "referral id"), "business": business["_id"]})
    if not referral:
        raise NotFound("Referral not found")
    campaign = await db[CAMPAIGNS].find_one({"_id": referral["campaign"]})
    referrer = await db[CUSTOMERS].find_one({"_id": referral["referrer"]}, {"name": 1})

    message = await openai_service.generate_follow_up_message(
        business, campaign, referral, referrer=referrer, follow_up_type=data.type
    )
    return FollowUpDraftResponse(message=EmailCopy.model_validate(message))
