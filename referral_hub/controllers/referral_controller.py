# referral_hub/controllers/referral_controller.py
"""
HTTP-facing wrappers around the Referral Ledger. Controllers translate
request schemas into ledger calls and ledger documents into response schemas;
the ledger owns every status and counter change.
"""
from typing import Optional

from ..db.mongo import get_db
from ..schemas.common import CountResponse, DataResponse, ListResponse, paged
from ..schemas.customer_schema import CustomerOut
from ..schemas.referral_schema import (
    ConversionResponse,
    ConvertRequest,
    FollowUpOut,
    FollowUpRequest,
    FollowUpResponse,
    GenerateCodeRequest,
    PublicConvertRequest,
    ReferralCreate,
    ReferralCreateResponse,
    ReferralOut,
    ReferralStatusUpdate,
    ShareLinkResponse,
)
from ..schemas.reward_schema import RewardOut
from ..services.email_service import get_email_notifier, get_sms_notifier
from ..services.referral_ledger import LedgerOutcome, ReferralLedger, shareable_links


def get_ledger() -> ReferralLedger:
    return ReferralLedger(get_db(), notifier=get_email_notifier(), sms_notifier=get_sms_notifier())


def _conversion_response(outcome: LedgerOutcome) -> ConversionResponse:
    return ConversionResponse(
        referral=ReferralOut.model_validate(outcome.referral),
        customer=CustomerOut.model_validate(outcome.customer) if outcome.customer else None,
        rewards=[RewardOut.model_validate(r) for r in outcome.rewards],
    )


async def create_referral(business: dict, data: ReferralCreate) -> ReferralCreateResponse:
    referee = None
    if data.referee_name or data.referee_email or data.referee_phone:
        referee = {
            "name": data.referee_name or (data.referee_email or "").split("@")[0] or "Friend",
            "email": data.referee_email,
            "phone": data.referee_phone,
        }
    referral = await get_ledger().create_referral(
        business["_id"],
        data.campaign_id,
        data.referrer_id,
        referee=referee,
        sharing_method=data.sharing_method,
        notes=data.notes,
    )
    return ReferralCreateResponse(
        data=ReferralOut.model_validate(referral),
        shareable_links=shareable_links(referral["referralLink"], business.get("businessName")),
    )


async def list_referrals(
    business: dict,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    campaign_id: Optional[str] = None,
) -> ListResponse[ReferralOut]:
    page, limit = max(1, page), max(1, min(limit, 100))
    docs, total = await get_ledger().list_referrals(business["_id"], page, limit, status, campaign_id)
    return ListResponse(**paged([ReferralOut.model_validate(d) for d in docs], total, page, limit))


async def get_referral(business: dict, referral_id: str) -> DataResponse[ReferralOut]:
    referral = await get_ledger().get_referral(business["_id"], referral_id)
    return DataResponse(data=ReferralOut.model_validate(referral))


async def list_customer_referrals(customer: dict) -> ListResponse[ReferralOut]:
    docs = await get_ledger().list_customer_referrals(customer["_id"])
    return ListResponse(count=len(docs), data=[ReferralOut.model_validate(d) for d in docs])


async def update_referral_status(business: dict, referral_id: str, data: ReferralStatusUpdate) -> ConversionResponse:
    details = data.model_dump(exclude={"status"}, exclude_none=True)
    outcome = await get_ledger().transition_status(business["_id"], referral_id, data.status, details or None)
    return _conversion_response(outcome)


async def track_click(id_or_code: str) -> DataResponse[ReferralOut]:
    referral = await get_ledger().track_click(id_or_code)
    return DataResponse(data=ReferralOut.model_validate(referral))


async def convert_referral(business: dict, referral_id: str, data: Optional[ConvertRequest]) -> ConversionResponse:
    body = data.model_dump(exclude_none=True) if data else {}
    details = {k: body.pop(k) for k in ("conversion_type", "conversion_value") if k in body}
    outcome = await get_ledger().convert_referee(business["_id"], referral_id, body or None, details or None)
    return _conversion_response(outcome)


async def convert_public(data: PublicConvertRequest) -> ConversionResponse:
    outcome = await get_ledger().convert_public(
        data.campaign_id, data.referrer_id, data.name, data.email, data.phone
    )
    return _conversion_response(outcome)


async def generate_referral_code(business: dict, data: GenerateCodeRequest) -> ShareLinkResponse:
    result = await get_ledger().generate_share_link(business["_id"], data.campaign_id, data.customer_id)
    return ShareLinkResponse(
        referral_code=result["referralCode"],
        referral_link=result["referralLink"],
        shareable_links=result["shareableLinks"],
    )


async def send_follow_up(business: dict, referral_id: str, data: FollowUpRequest) -> FollowUpResponse:
    entry, referral = await get_ledger().send_follow_up(
        business["_id"], referral_id, data.message, data.method, data.subject
    )
    return FollowUpResponse(
        follow_up=FollowUpOut.model_validate(entry),
        data=ReferralOut.model_validate(referral),
    )


async def expire_referrals(business: dict) -> CountResponse:
    count = await get_ledger().expire_stale(business["_id"])
    return CountResponse(count=count, message=f"{count} referrals expired")
