# referral_hub/schemas/customer_schema.py
from typing import List, Literal, Optional

from pydantic import EmailStr, Field, field_validator

from .business_schema import AddressIn
from .common import ApiModel, DocOut, PyObjectId
from ..models.customer_model import normalize_phone


class CustomerCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[AddressIn] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=500)
    # customer created from a referral: goes through the ledger conversion
    referral_code: Optional[str] = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)


class CustomerUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[AddressIn] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    active: Optional[bool] = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v):
        return normalize_phone(v)


class ReferralStatsOut(ApiModel):
    total_referrals: int = 0
    successful_referrals: int = 0
    pending_referrals: int = 0
    total_rewards_earned: int = 0


class CustomerOut(DocOut):
    business: PyObjectId
    user: Optional[PyObjectId] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[AddressIn] = None
    source: Literal["direct", "referral", "import", "other"] = "direct"
    referred_by: Optional[PyObjectId] = None
    referral_campaign: Optional[PyObjectId] = None
    is_referral: bool = False
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    referral_stats: ReferralStatsOut = Field(default_factory=ReferralStatsOut)
    active: bool = True
