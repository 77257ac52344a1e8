from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator

from .common import ApiModel, PyObjectId


# ✅ Request Schemas
class RegisterRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["business", "customer"] = "business"
    # business sign-up
    business_name: Optional[str] = None
    industry: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    # customer sign-up: the business the customer belongs to
    business_id: Optional[PyObjectId] = None

    @field_validator("password")
    @classmethod
    def _bcrypt_limit(cls, v: str) -> str:
        if len(v.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes")
        return v

    @field_validator("name", "business_name", "industry", "website", "phone", mode="before")
    @classmethod
    def _trim(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


# ✅ Response Schemas
class UserOut(ApiModel):
    id: PyObjectId = Field(alias="_id")
    name: Optional[str] = None
    email: EmailStr
    role: str
    business_id: Optional[PyObjectId] = None
    business_name: Optional[str] = None
    customer_id: Optional[PyObjectId] = None


class AuthResponse(ApiModel):
    success: bool = True
    token: str
    user: UserOut


class MeResponse(ApiModel):
    success: bool = True
    user: UserOut
