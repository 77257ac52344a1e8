# referral_hub/models/business_model.py
import os
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pydantic import Field

from .base import MongoModel
from ..utils.datetime_utils import now_utc

DEFAULT_REFERRAL_EXPIRATION_DAYS = int(os.getenv("DEFAULT_REFERRAL_EXPIRATION_DAYS", "30"))


class Address(MongoModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class BusinessSettings(MongoModel):
    email_notifications: bool = True
    sms_notifications: bool = False
    default_reward_amount: float = 10
    # days
    default_referral_expiration: int = DEFAULT_REFERRAL_EXPIRATION_DAYS


class BusinessModel(MongoModel):
    """
    Tenant root. Soft-deleted through ``active``; never removed.
    """
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    user: ObjectId
    business_name: str
    description: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[Address] = None
    settings: BusinessSettings = Field(default_factory=BusinessSettings)
    active: bool = True
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
