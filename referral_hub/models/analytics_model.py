# referral_hub/models/analytics_model.py
from datetime import datetime
from typing import Literal, Optional

from bson import ObjectId
from pydantic import Field

from .base import MongoModel
from ..utils.datetime_utils import now_utc

AnalyticsPeriod = Literal["daily", "weekly", "monthly", "yearly"]


class ReferralCounts(MongoModel):
    total: int = 0
    pending: int = 0
    clicked: int = 0
    converted: int = 0
    rewarded: int = 0
    expired: int = 0
    rejected: int = 0


class CampaignCounts(MongoModel):
    active: int = 0
    ended: int = 0
    total_referrals: int = 0
    conversion_rate: float = 0


class CustomerCounts(MongoModel):
    total: int = 0
    new: int = 0
    active: int = 0
    referred: int = 0


class RewardCounts(MongoModel):
    total: int = 0
    issued: int = 0
    claimed: int = 0
    expired: int = 0
    total_value: float = 0


class SharingCounts(MongoModel):
    sms: int = 0
    email: int = 0
    facebook: int = 0
    twitter: int = 0
    whatsapp: int = 0
    copy_link: int = Field(default=0, alias="copy")
    other: int = 0


class AnalyticsModel(MongoModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    business: ObjectId
    period: AnalyticsPeriod
    date: datetime
    # midnight of ``date``; part of the one-snapshot-per-day unique index
    day: datetime
    referrals: ReferralCounts = Field(default_factory=ReferralCounts)
    campaigns: CampaignCounts = Field(default_factory=CampaignCounts)
    customers: CustomerCounts = Field(default_factory=CustomerCounts)
    rewards: RewardCounts = Field(default_factory=RewardCounts)
    sharing: SharingCounts = Field(default_factory=SharingCounts)
    created_at: datetime = Field(default_factory=now_utc)
