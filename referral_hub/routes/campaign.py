# referral_hub/routes/campaign.py
from typing import Optional

from fastapi import APIRouter, Depends

from ..controllers.campaign_controller import (
    create_campaign,
    delete_campaign,
    get_campaign,
    get_campaign_stats,
    get_public_campaign,
    list_active_campaigns,
    list_campaigns,
    toggle_campaign,
    update_campaign,
    update_campaign_status,
)
from ..schemas.campaign_schema import (
    CampaignCreate,
    CampaignOut,
    CampaignPublicOut,
    CampaignStatsOut,
    CampaignStatusUpdate,
    CampaignUpdate,
)
from ..schemas.common import DataResponse, ListResponse, MessageResponse
from ..utils.auth_utils import get_current_business

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


@router.post("", response_model=DataResponse[CampaignOut], status_code=201, summary="Create a campaign")
async def create(data: CampaignCreate, business: dict = Depends(get_current_business)):
    return await create_campaign(business, data)


@router.get("", response_model=ListResponse[CampaignOut], summary="List campaigns")
async def list_all(
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    business: dict = Depends(get_current_business),
):
    return await list_campaigns(business, page, limit, status)


@router.get("/active", response_model=ListResponse[CampaignOut], summary="Campaigns currently accepting referrals")
async def list_active(business: dict = Depends(get_current_business)):
    return await list_active_campaigns(business)


@router.get("/{campaign_id}/public", response_model=DataResponse[CampaignPublicOut], summary="Public campaign details")
async def public_details(campaign_id: str):
    return await get_public_campaign(campaign_id)


@router.get("/{campaign_id}/stats", response_model=DataResponse[CampaignStatsOut], summary="Campaign statistics")
async def stats(campaign_id: str, business: dict = Depends(get_current_business)):
    return await get_campaign_stats(business, campaign_id)


@router.get("/{campaign_id}", response_model=DataResponse[CampaignOut], summary="Get a campaign")
async def read(campaign_id: str, business: dict = Depends(get_current_business)):
    return await get_campaign(business, campaign_id)


@router.put("/{campaign_id}", response_model=DataResponse[CampaignOut], summary="Edit a campaign")
async def update(campaign_id: str, data: CampaignUpdate, business: dict = Depends(get_current_business)):
    return await update_campaign(business, campaign_id, data)


@router.put("/{campaign_id}/status", response_model=DataResponse[CampaignOut], summary="Move a campaign to a new status")
async def change_status(campaign_id: str, data: CampaignStatusUpdate, business: dict = Depends(get_current_business)):
    return await update_campaign_status(business, campaign_id, data)


@router.put("/{campaign_id}/toggle", response_model=DataResponse[CampaignOut], summary="Pause or resume a campaign")
async def toggle(campaign_id: str, business: dict = Depends(get_current_business)):
    return await toggle_campaign(business, campaign_id)


@router.delete("/{campaign_id}", response_model=MessageResponse, summary="Delete a campaign without referrals")
async def delete(campaign_id: str, business: dict = Depends(get_current_business)):
    return await delete_campaign(business, campaign_id)
