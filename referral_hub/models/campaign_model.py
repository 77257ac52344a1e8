# referral_hub/models/campaign_model.py
from datetime import datetime
from typing import Literal, Optional

from bson import ObjectId
from pydantic import Field

from .base import MongoModel
from ..utils.datetime_utils import now_utc

RewardType = Literal["percentage", "fixed", "points", "custom"]
CampaignType = Literal["discount", "gift", "points", "cash", "custom"]
CampaignStatus = Literal["draft", "active", "paused", "ended", "cancelled"]
ConversionCriteria = Literal["purchase", "signup", "subscription", "custom", "form"]


class RewardRule(MongoModel):
    type: RewardType = "fixed"
    value: float = Field(..., ge=0)
    description: Optional[str] = None


class EmailMessage(MongoModel):
    subject: Optional[str] = None
    body: Optional[str] = None


class DefaultMessage(MongoModel):
    sms: Optional[str] = None
    email: Optional[EmailMessage] = None
    social: Optional[str] = None


class CampaignStatistics(MongoModel):
    """
    Derived counters. Only services/counters.py writes these.
    """
    total_referrals: int = 0
    successful_referrals: int = 0
    pending_referrals: int = 0
    clicked_referrals: int = 0
    # count of rewarded referrals; the value sum is kept separately
    total_rewards: int = 0
    total_rewards_value: float = 0


class CampaignModel(MongoModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    business: ObjectId
    name: str
    description: Optional[str] = None
    type: CampaignType = "discount"
    referrer_reward: RewardRule
    referee_reward: RewardRule
    status: CampaignStatus = "draft"
    active: bool = True
    start_date: datetime = Field(default_factory=now_utc)
    end_date: Optional[datetime] = None
    target_audience: Optional[str] = None
    conversion_criteria: ConversionCriteria = "form"
    custom_conversion_details: Optional[str] = None
    default_message: Optional[DefaultMessage] = None
    # fall back to business settings / service defaults when unset
    referral_expiration_days: Optional[int] = Field(default=None, ge=1)
    reward_expiration_days: Optional[int] = Field(default=None, ge=1)
    statistics: CampaignStatistics = Field(default_factory=CampaignStatistics)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
