# referral_hub/schemas/ai_schema.py
from typing import Literal, Optional

from .common import ApiModel, PyObjectId


class SharingSuggestionsRequest(ApiModel):
    campaign_id: PyObjectId
    customer_id: PyObjectId
    referral_link: Optional[str] = None


class EmailCopy(ApiModel):
    subject: str
    body: str


class SharingSuggestions(ApiModel):
    sms: str
    email: EmailCopy
    facebook: str
    twitter: str
    whatsapp: str


class SharingSuggestionsResponse(ApiModel):
    success: bool = True
    suggestions: SharingSuggestions


class FollowUpDraftRequest(ApiModel):
    referral_id: PyObjectId
    type: Literal["initial", "reminder", "final"] = "reminder"


class FollowUpDraftResponse(ApiModel):
    success: bool = True
    message: EmailCopy
