# referral_hub/routes/analytics.py
from typing import Optional

from fastapi import APIRouter, Depends

from ..controllers.analytics_controller import generate_analytics, get_analytics_history
from ..schemas.analytics_schema import AnalyticsOut, GenerateAnalyticsRequest
from ..schemas.common import DataResponse, ListResponse
from ..utils.auth_utils import get_current_business

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.post("/generate", response_model=DataResponse[AnalyticsOut], status_code=201, summary="Snapshot today's numbers")
async def generate(data: GenerateAnalyticsRequest, business: dict = Depends(get_current_business)):
    return await generate_analytics(business, data)


@router.get("/history", response_model=ListResponse[AnalyticsOut], summary="Past snapshots, newest first")
async def history(
    period: Optional[str] = None,
    limit: int = 30,
    business: dict = Depends(get_current_business),
):
    return await get_analytics_history(business, period, limit)
