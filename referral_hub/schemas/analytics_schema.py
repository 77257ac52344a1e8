# referral_hub/schemas/analytics_schema.py
from datetime import datetime
from typing import Literal

from pydantic import Field

from .common import ApiModel, PyObjectId

AnalyticsPeriod = Literal["daily", "weekly", "monthly", "yearly"]


class GenerateAnalyticsRequest(ApiModel):
    period: AnalyticsPeriod


class ReferralCountsOut(ApiModel):
    total: int = 0
    pending: int = 0
    clicked: int = 0
    converted: int = 0
    rewarded: int = 0
    expired: int = 0
    rejected: int = 0


class CampaignCountsOut(ApiModel):
    active: int = 0
    ended: int = 0
    total_referrals: int = 0
    conversion_rate: float = 0


class CustomerCountsOut(ApiModel):
    total: int = 0
    new: int = 0
    active: int = 0
    referred: int = 0


class RewardCountsOut(ApiModel):
    total: int = 0
    issued: int = 0
    claimed: int = 0
    expired: int = 0
    total_value: float = 0


class SharingCountsOut(ApiModel):
    sms: int = 0
    email: int = 0
    facebook: int = 0
    twitter: int = 0
    whatsapp: int = 0
    copy_link: int = Field(default=0, alias="copy")
    other: int = 0


class AnalyticsOut(ApiModel):
    id: PyObjectId = Field(alias="_id")
    business: PyObjectId
    period: AnalyticsPeriod
    date: datetime
    referrals: ReferralCountsOut = Field(default_factory=ReferralCountsOut)
    campaigns: CampaignCountsOut = Field(default_factory=CampaignCountsOut)
    customers: CustomerCountsOut = Field(default_factory=CustomerCountsOut)
    rewards: RewardCountsOut = Field(default_factory=RewardCountsOut)
    sharing: SharingCountsOut = Field(default_factory=SharingCountsOut)
    created_at: datetime
