# referral_hub/schemas/campaign_schema.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, model_validator

from .common import ApiModel, DocOut, PyObjectId

RewardType = Literal["percentage", "fixed", "points", "custom"]
CampaignType = Literal["discount", "gift", "points", "cash", "custom"]
CampaignStatus = Literal["draft", "active", "paused", "ended", "cancelled"]
ConversionCriteria = Literal["purchase", "signup", "subscription", "custom", "form"]


class RewardRuleIn(ApiModel):
    type: RewardType = "fixed"
    value: float = Field(..., ge=0)
    description: Optional[str] = None


class EmailMessageIn(ApiModel):
    subject: Optional[str] = None
    body: Optional[str] = None


class DefaultMessageIn(ApiModel):
    sms: Optional[str] = None
    email: Optional[EmailMessageIn] = None
    social: Optional[str] = None


class CampaignCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: CampaignType = "discount"
    referrer_reward: RewardRuleIn
    referee_reward: RewardRuleIn
    status: Literal["draft", "active"] = "draft"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    target_audience: Optional[str] = None
    conversion_criteria: ConversionCriteria = "form"
    custom_conversion_details: Optional[str] = None
    default_message: Optional[DefaultMessageIn] = None
    referral_expiration_days: Optional[int] = Field(default=None, ge=1)
    reward_expiration_days: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class CampaignUpdate(ApiModel):
    """
    Statistics and status are not editable here.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[CampaignType] = None
    referrer_reward: Optional[RewardRuleIn] = None
    referee_reward: Optional[RewardRuleIn] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    target_audience: Optional[str] = None
    conversion_criteria: Optional[ConversionCriteria] = None
    custom_conversion_details: Optional[str] = None
    default_message: Optional[DefaultMessageIn] = None
    referral_expiration_days: Optional[int] = Field(default=None, ge=1)
    reward_expiration_days: Optional[int] = Field(default=None, ge=1)


class CampaignStatusUpdate(ApiModel):
    status: CampaignStatus


class CampaignStatisticsOut(ApiModel):
    total_referrals: int = 0
    successful_referrals: int = 0
    pending_referrals: int = 0
    clicked_referrals: int = 0
    total_rewards: int = 0
    total_rewards_value: float = 0


class CampaignOut(DocOut):
    business: PyObjectId
    name: str
    description: Optional[str] = None
    type: CampaignType = "discount"
    referrer_reward: RewardRuleIn
    referee_reward: RewardRuleIn
    status: CampaignStatus = "draft"
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    target_audience: Optional[str] = None
    conversion_criteria: Optional[ConversionCriteria] = None
    custom_conversion_details: Optional[str] = None
    default_message: Optional[DefaultMessageIn] = None
    referral_expiration_days: Optional[int] = None
    reward_expiration_days: Optional[int] = None
    statistics: CampaignStatisticsOut = Field(default_factory=CampaignStatisticsOut)


class CampaignStatsOut(ApiModel):
    statistics: CampaignStatisticsOut
    conversion_rate: float = 0
    referrals_by_status: dict = Field(default_factory=dict)
    rewards_by_status: dict = Field(default_factory=dict)


class CampaignPublicOut(ApiModel):
    id: PyObjectId = Field(alias="_id")
    name: str
    description: Optional[str] = None
    type: CampaignType = "discount"
    referrer_reward: RewardRuleIn
    referee_reward: RewardRuleIn
    business_name: Optional[str] = None
    business: PyObjectId
    accepting_referrals: bool = True
