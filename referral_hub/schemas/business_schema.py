# referral_hub/schemas/business_schema.py
from typing import Optional

from pydantic import EmailStr, Field

from .common import ApiModel, DocOut, PyObjectId


class AddressIn(ApiModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class SettingsIn(ApiModel):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    default_reward_amount: Optional[float] = Field(default=None, ge=0)
    default_referral_expiration: Optional[int] = Field(default=None, ge=1)


class BusinessCreate(ApiModel):
    business_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    industry: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[AddressIn] = None
    settings: Optional[SettingsIn] = None


class BusinessUpdate(ApiModel):
    business_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    industry: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[AddressIn] = None


class SettingsOut(ApiModel):
    email_notifications: bool = True
    sms_notifications: bool = False
    default_reward_amount: float = 10
    default_referral_expiration: int = 30


class BusinessOut(DocOut):
    user: PyObjectId
    business_name: str
    description: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[AddressIn] = None
    settings: SettingsOut = Field(default_factory=SettingsOut)
    active: bool = True


class BusinessPublicOut(ApiModel):
    id: PyObjectId = Field(alias="_id")
    business_name: str
    description: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
