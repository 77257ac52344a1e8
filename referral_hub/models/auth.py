from pydantic import EmailStr, Field
from typing import Literal, Optional
from datetime import datetime
from bson import ObjectId

from .base import MongoModel
from ..utils.datetime_utils import now_utc


class UserModel(MongoModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    email: EmailStr
    name: Optional[str] = None
    password_hash: Optional[str] = None
    role: Literal["business", "customer"] = "business"
    created_at: datetime = Field(default_factory=now_utc)
