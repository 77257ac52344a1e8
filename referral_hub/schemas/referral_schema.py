# referral_hub/schemas/referral_schema.py
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from .common import ApiModel, DocOut, PyObjectId
from .customer_schema import CustomerOut
from .reward_schema import RewardOut
from ..models.customer_model import normalize_phone

ReferralStatus = Literal["pending", "clicked", "converted", "rewarded", "expired", "rejected"]
SharingMethod = Literal["sms", "email", "facebook", "twitter", "whatsapp", "copy", "other"]


# ---------- requests ----------
class ReferralCreate(ApiModel):
    campaign_id: PyObjectId
    referrer_id: PyObjectId
    referee_name: Optional[str] = Field(default=None, max_length=100)
    referee_email: Optional[EmailStr] = None
    referee_phone: Optional[str] = None
    sharing_method: SharingMethod = "other"
    notes: Optional[str] = None

    @field_validator("referee_phone", mode="before")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)


class ReferralStatusUpdate(ApiModel):
    status: ReferralStatus
    conversion_type: Optional[str] = None
    conversion_value: Optional[float] = None
    notes: Optional[str] = None


class ConvertRequest(ApiModel):
    """
    Overrides for the Customer created from the referee snapshot.
    """
    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    conversion_type: Optional[str] = None
    conversion_value: Optional[float] = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)


class PublicConvertRequest(ApiModel):
    campaign_id: PyObjectId
    referrer_id: PyObjectId
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)


class GenerateCodeRequest(ApiModel):
    campaign_id: PyObjectId
    customer_id: PyObjectId


class FollowUpRequest(ApiModel):
    message: Optional[str] = None
    method: Literal["email", "sms", "ai"] = "email"
    subject: Optional[str] = None


# ---------- responses ----------
class RefereeOut(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    converted_to_customer: bool = False
    customer_id: Optional[PyObjectId] = None


class ConversionDetailsOut(ApiModel):
    converted_at: Optional[datetime] = None
    conversion_type: Optional[str] = None
    conversion_value: Optional[float] = None
    notes: Optional[str] = None


class FollowUpOut(ApiModel):
    sent_at: datetime
    method: str
    message: str
    status: Literal["sent", "failed"]
    error: Optional[str] = None


class ReferralOut(DocOut):
    campaign: PyObjectId
    business: PyObjectId
    referrer: PyObjectId
    referee: Optional[RefereeOut] = None
    status: ReferralStatus
    referral_code: str
    referral_link: Optional[str] = None
    click_count: int = 0
    last_clicked_at: Optional[datetime] = None
    conversion_details: Optional[ConversionDetailsOut] = None
    sharing_method: Optional[str] = None
    follow_ups: List[FollowUpOut] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None


class ReferralCreateResponse(ApiModel):
    success: bool = True
    data: ReferralOut
    shareable_links: Dict[str, str]


class ShareLinkResponse(ApiModel):
    success: bool = True
    referral_code: str
    referral_link: str
    shareable_links: Dict[str, str]


class ConversionResponse(ApiModel):
    success: bool = True
    referral: ReferralOut
    customer: Optional[CustomerOut] = None
    rewards: List[RewardOut] = Field(default_factory=list)


class FollowUpResponse(ApiModel):
    success: bool = True
    follow_up: FollowUpOut
    data: ReferralOut
