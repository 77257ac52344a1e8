# referral_hub/routes/ai.py
from fastapi import APIRouter, Depends

from ..controllers.ai_controller import draft_follow_up, get_sharing_suggestions
from ..schemas.ai_schema import (
    FollowUpDraftRequest,
    FollowUpDraftResponse,
    SharingSuggestionsRequest,
    SharingSuggestionsResponse,
)
from ..utils.auth_utils import get_current_business

router = APIRouter(prefix="/ai", tags=["AI"])


@router.post("/sharing-suggestions", response_model=SharingSuggestionsResponse, summary="Draft share messages for a customer")
async def sharing_suggestions(data: SharingSuggestionsRequest, business: dict = Depends(get_current_business)):
    return await get_sharing_suggestions(business, data)


@router.post("/follow-up", response_model=FollowUpDraftResponse, summary="Draft a follow-up email for a referral")
async def follow_up(data: FollowUpDraftRequest, business: dict = Depends(get_current_business)):
    return await draft_follow_up(business, data)
