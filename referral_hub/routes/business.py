# referral_hub/routes/business.py
from fastapi import APIRouter, Depends

from ..controllers.business_controller import (
    create_business,
    deactivate_business,
    get_business,
    get_public_business,
    update_business,
    update_settings,
)
from ..schemas.business_schema import (
    BusinessCreate,
    BusinessOut,
    BusinessPublicOut,
    BusinessUpdate,
    SettingsIn,
)
from ..schemas.common import DataResponse, MessageResponse
from ..utils.auth_utils import get_current_business, get_current_user

router = APIRouter(prefix="/business", tags=["Business"])


@router.post("", response_model=DataResponse[BusinessOut], status_code=201, summary="Create my business profile")
async def create(data: BusinessCreate, current_user: dict = Depends(get_current_user)):
    return await create_business(current_user, data)


@router.get("", response_model=DataResponse[BusinessOut], summary="My business profile")
async def read(business: dict = Depends(get_current_business)):
    return await get_business(business)


@router.put("", response_model=DataResponse[BusinessOut], summary="Update my business profile")
async def update(data: BusinessUpdate, business: dict = Depends(get_current_business)):
    return await update_business(business, data)


@router.put("/settings", response_model=DataResponse[BusinessOut], summary="Update business settings")
async def settings(data: SettingsIn, business: dict = Depends(get_current_business)):
    return await update_settings(business, data)


@router.delete("", response_model=MessageResponse, summary="Deactivate my business")
async def deactivate(business: dict = Depends(get_current_business)):
    return await deactivate_business(business)


# 🌐 Public profile for referral landing pages
@router.get("/public/{business_id}", response_model=DataResponse[BusinessPublicOut], summary="Public business profile")
async def public_profile(business_id: str):
    return await get_public_business(business_id)
