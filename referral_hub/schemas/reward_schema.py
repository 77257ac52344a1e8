# referral_hub/schemas/reward_schema.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from .common import ApiModel, DocOut, PyObjectId

RewardStatus = Literal["pending", "issued", "claimed", "expired", "cancelled"]
NotificationType = Literal["issued", "reminder", "expiring_soon", "expired"]


class ClaimDetailsIn(ApiModel):
    claimed_by: Optional[str] = None
    claim_location: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class ClaimRequest(ApiModel):
    claim_details: Optional[ClaimDetailsIn] = None


class VerifyRequest(ApiModel):
    code: str = Field(..., min_length=1, max_length=32)


class RewardStatusUpdate(ApiModel):
    status: RewardStatus
    claim_details: Optional[ClaimDetailsIn] = None


class NotifyRequest(ApiModel):
    type: NotificationType = "reminder"
    message: Optional[str] = None


class NotificationLogOut(ApiModel):
    type: str
    method: str = "email"
    sent_at: datetime
    status: Literal["sent", "failed"]


class RewardOut(DocOut):
    business: PyObjectId
    campaign: PyObjectId
    referral: PyObjectId
    recipient: PyObjectId
    recipient_type: Literal["referrer", "referee"]
    type: str
    value: float
    description: Optional[str] = None
    code: str
    status: RewardStatus
    issued_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    claim_method: Optional[str] = None
    claim_details: Optional[ClaimDetailsIn] = None
    notifications_sent: List[NotificationLogOut] = Field(default_factory=list)


class NotifyResponse(ApiModel):
    success: bool = True
    notification: NotificationLogOut
    message: str
