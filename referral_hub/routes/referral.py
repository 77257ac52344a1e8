# referral_hub/routes/referral.py
from typing import Optional

from fastapi import APIRouter, Body, Depends

from ..controllers.referral_controller import (
    convert_public,
    convert_referral,
    create_referral,
    expire_referrals,
    generate_referral_code,
    get_referral,
    list_customer_referrals,
    list_referrals,
    send_follow_up,
    track_click,
    update_referral_status,
)
from ..schemas.common import CountResponse, DataResponse, ListResponse
from ..schemas.referral_schema import (
    ConversionResponse,
    ConvertRequest,
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
from ..utils.auth_utils import get_current_business, get_current_customer

router = APIRouter(prefix="/referrals", tags=["Referrals"])


@router.post("", response_model=ReferralCreateResponse, status_code=201, summary="Record a referral")
async def create(data: ReferralCreate, business: dict = Depends(get_current_business)):
    return await create_referral(business, data)


@router.get("", response_model=ListResponse[ReferralOut], summary="List referrals")
async def list_all(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    campaign_id: Optional[str] = None,
    business: dict = Depends(get_current_business),
):
    return await list_referrals(business, page, limit, status, campaign_id)


@router.get("/customer", response_model=ListResponse[ReferralOut], summary="Referrals I made")
async def mine(customer: dict = Depends(get_current_customer)):
    return await list_customer_referrals(customer)


@router.post("/generate-code", response_model=ShareLinkResponse, summary="Get or create a share link for a customer")
async def generate_code(data: GenerateCodeRequest, business: dict = Depends(get_current_business)):
    return await generate_referral_code(business, data)


# 🌐 Public: a referred friend signs up from the landing page
@router.post("/convert-public", response_model=ConversionResponse, status_code=201, summary="Sign up through a referral link")
async def public_conversion(data: PublicConvertRequest):
    return await convert_public(data)


@router.post("/expire", response_model=CountResponse, summary="Expire referrals past their deadline")
async def expire(business: dict = Depends(get_current_business)):
    return await expire_referrals(business)


@router.get("/{referral_id}", response_model=DataResponse[ReferralOut], summary="Get a referral")
async def read(referral_id: str, business: dict = Depends(get_current_business)):
    return await get_referral(business, referral_id)


@router.put("/{referral_id}/status", response_model=ConversionResponse, summary="Move a referral to a new status")
async def change_status(referral_id: str, data: ReferralStatusUpdate, business: dict = Depends(get_current_business)):
    return await update_referral_status(business, referral_id, data)


# 🌐 Public: called when a referral link is opened; accepts an id or a code
@router.put("/{referral_id}/click", response_model=DataResponse[ReferralOut], summary="Track a referral link click")
async def click(referral_id: str):
    return await track_click(referral_id)


@router.post("/{referral_id}/convert", response_model=ConversionResponse, summary="Convert a referral")
async def convert(
    referral_id: str,
    data: Optional[ConvertRequest] = Body(default=None),
    business: dict = Depends(get_current_business),
):
    return await convert_referral(business, referral_id, data)


@router.post("/{referral_id}/followup", response_model=FollowUpResponse, summary="Send a follow-up to the referee")
async def follow_up(referral_id: str, data: FollowUpRequest, business: dict = Depends(get_current_business)):
    return await send_follow_up(business, referral_id, data)
