# referral_hub/models/referral_model.py
from datetime import datetime
from typing import List, Literal, Optional, Union

from bson import ObjectId
from pydantic import Field, TypeAdapter

from .base import MongoModel
from ..utils.datetime_utils import now_utc

ReferralStatus = Literal["pending", "clicked", "converted", "rewarded", "expired", "rejected"]
SharingMethod = Literal["sms", "email", "facebook", "twitter", "whatsapp", "copy", "other"]
FollowUpMethod = Literal["email", "sms", "ai"]


class AnonymousReferee(MongoModel):
    """
    Invited person who is not (yet) a Customer of the business.
    """
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    converted_to_customer: Literal[False] = False


class LinkedReferee(MongoModel):
    """
    Referee resolved to a Customer; ``customer_id`` is a lookup reference only.
    """
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    converted_to_customer: Literal[True] = True
    customer_id: ObjectId


Referee = Union[LinkedReferee, AnonymousReferee]

_referee_adapter = TypeAdapter(Referee)


def referee_from_doc(doc: Optional[dict]) -> Optional[Referee]:
    if not doc:
        return None
    return _referee_adapter.validate_python(doc)


def link_referee(referee: Optional[Referee], customer: dict) -> LinkedReferee:
    return LinkedReferee(
        name=(referee.name if referee else None) or customer.get("name"),
        email=(referee.email if referee else None) or customer.get("email"),
        phone=(referee.phone if referee else None) or customer.get("phone"),
        customer_id=customer["_id"],
    )


class ConversionDetails(MongoModel):
    converted_at: Optional[datetime] = None
    conversion_type: Optional[str] = None
    conversion_value: Optional[float] = None
    notes: Optional[str] = None


class FollowUp(MongoModel):
    sent_at: datetime = Field(default_factory=now_utc)
    method: FollowUpMethod = "email"
    message: str
    status: Literal["sent", "failed"] = "sent"
    error: Optional[str] = None


class ReferralModel(MongoModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    campaign: ObjectId
    business: ObjectId
    referrer: ObjectId
    # None for an open share link that has not named anyone yet
    referee: Optional[Referee] = None
    status: ReferralStatus = "pending"
    referral_code: str
    referral_link: Optional[str] = None
    click_count: int = 0
    last_clicked_at: Optional[datetime] = None
    conversion_details: Optional[ConversionDetails] = None
    sharing_method: SharingMethod = "other"
    follow_ups: List[FollowUp] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
