# referral_hub/routes/reward.py
from typing import Optional

from fastapi import APIRouter, Body, Depends

from ..controllers.reward_controller import (
    claim_reward,
    expire_rewards,
    get_reward,
    list_customer_rewards,
    list_rewards,
    send_reward_notification,
    update_reward_status,
    verify_reward,
)
from ..schemas.common import CountResponse, DataResponse, ListResponse
from ..schemas.reward_schema import (
    ClaimRequest,
    NotifyRequest,
    NotifyResponse,
    RewardOut,
    RewardStatusUpdate,
    VerifyRequest,
)
from ..utils.auth_utils import get_current_business, get_current_customer

router = APIRouter(prefix="/rewards", tags=["Rewards"])


@router.get("", response_model=ListResponse[RewardOut], summary="List rewards")
async def list_all(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    recipient_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    business: dict = Depends(get_current_business),
):
    return await list_rewards(business, page, limit, status, recipient_id, campaign_id)


@router.get("/customer", response_model=ListResponse[RewardOut], summary="My rewards")
async def mine(customer: dict = Depends(get_current_customer)):
    return await list_customer_rewards(customer)


@router.post("/verify", response_model=DataResponse[RewardOut], summary="Look up a reward by its code")
async def verify(data: VerifyRequest, business: dict = Depends(get_current_business)):
    return await verify_reward(business, data)


@router.post("/expire", response_model=CountResponse, summary="Expire rewards past their deadline")
async def expire(business: dict = Depends(get_current_business)):
    return await expire_rewards(business)


@router.get("/{reward_id}", response_model=DataResponse[RewardOut], summary="Get a reward")
async def read(reward_id: str, business: dict = Depends(get_current_business)):
    return await get_reward(business, reward_id)


@router.put("/{reward_id}/status", response_model=DataResponse[RewardOut], summary="Change a reward's status")
async def change_status(reward_id: str, data: RewardStatusUpdate, business: dict = Depends(get_current_business)):
    return await update_reward_status(business, reward_id, data)


@router.post("/{reward_id}/claim", response_model=DataResponse[RewardOut], summary="Claim one of my rewards")
async def claim(
    reward_id: str,
    data: Optional[ClaimRequest] = Body(default=None),
    customer: dict = Depends(get_current_customer),
):
    return await claim_reward(customer, reward_id, data)


@router.post("/{reward_id}/notify", response_model=NotifyResponse, summary="Email the reward's recipient")
async def notify(reward_id: str, data: NotifyRequest, business: dict = Depends(get_current_business)):
    return await send_reward_notification(business, reward_id, data)
