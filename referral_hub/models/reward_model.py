# referral_hub/models/reward_model.py
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import Field

from .base import MongoModel
from .campaign_model import RewardType
from ..utils.datetime_utils import now_utc

RewardStatus = Literal["pending", "issued", "claimed", "expired", "cancelled"]
RecipientType = Literal["referrer", "referee"]
ClaimMethod = Literal["code", "link", "email", "manual", "automatic"]
NotificationType = Literal["issued", "reminder", "expiring_soon", "expired"]


class ClaimDetails(MongoModel):
    claimed_by: Optional[str] = None
    claim_location: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class NotificationLog(MongoModel):
    type: NotificationType
    method: Literal["email", "sms", "push"] = "email"
    sent_at: datetime = Field(default_factory=now_utc)
    status: Literal["sent", "delivered", "failed"] = "sent"


class RewardModel(MongoModel):
    """
    type/value/description are copied from the campaign rule when the reward
    is issued; later campaign edits do not touch issued rewards.
    """
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    business: ObjectId
    campaign: ObjectId
    referral: ObjectId
    recipient: ObjectId
    recipient_type: RecipientType
    type: RewardType
    value: float
    description: Optional[str] = None
    code: str
    status: RewardStatus = "pending"
    issued_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    claim_method: ClaimMethod = "code"
    claim_details: Optional[ClaimDetails] = None
    notifications_sent: List[NotificationLog] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
