# referral_hub/models/customer_model.py
import re
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import Field, field_validator, model_validator

from .base import MongoModel
from .business_model import Address
from ..utils.datetime_utils import now_utc

CustomerSource = Literal["direct", "referral", "import", "other"]


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """
    Keep digits only and prefix with "+"; bare 10-digit numbers are assumed
    to be US/Canada. Raises ValueError outside 10-15 digits.
    """
    if value is None or not str(value).strip():
        return None
    digits = re.sub(r"\D", "", str(value))
    if not 10 <= len(digits) <= 15:
        raise ValueError(
            f"{value} is not a valid phone number! Please enter a valid phone number with 10-15 digits."
        )
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


class ReferralStats(MongoModel):
    total_referrals: int = 0
    successful_referrals: int = 0
    pending_referrals: int = 0
    total_rewards_earned: int = 0


class CustomerPreferences(MongoModel):
    email_notifications: bool = True
    sms_notifications: bool = False


class CustomerModel(MongoModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    business: ObjectId
    user: Optional[ObjectId] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    source: CustomerSource = "direct"
    referred_by: Optional[ObjectId] = None
    referral_campaign: Optional[ObjectId] = None
    is_referral: bool = False
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    referral_stats: ReferralStats = Field(default_factory=ReferralStats)
    preferences: CustomerPreferences = Field(default_factory=CustomerPreferences)
    active: bool = True
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        return str(v).strip() if v is not None else v

    @field_validator("email", mode="before")
    @classmethod
    def _lower_email(cls, v):
        if v is None:
            return None
        v = str(v).strip().lower()
        return v or None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)

    @model_validator(mode="after")
    def _referral_source_is_complete(self):
        if self.source == "referral" and (self.referred_by is None or self.referral_campaign is None):
            raise ValueError("referral customers need both referredBy and referralCampaign")
        return self
