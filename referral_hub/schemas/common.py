# referral_hub/schemas/common.py
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from bson import ObjectId
from pydantic import BaseModel, Field, model_serializer
from pydantic.alias_generators import to_camel
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

_DATETIME_FMT = "%Y-%m-%dT%H:%M:%S.%f"  # e.g. 2025-09-19T19:17:43.904000

# Converts MongoDB ObjectId to string during validation
PyObjectId = Annotated[str, BeforeValidator(lambda x: str(x))]

T = TypeVar("T")


def _to_naive_iso(v: Any):
    if isinstance(v, datetime):
        return v.replace(tzinfo=None).strftime(_DATETIME_FMT)
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, list):
        return [_to_naive_iso(x) for x in v]
    if isinstance(v, dict):
        return {k: _to_naive_iso(val) for k, val in v.items()}
    return v


class ApiModel(BaseModel):
    """
    camelCase on the wire, snake_case in Python. Datetimes (including nested
    ones) go out as YYYY-MM-DDTHH:mm:ss.SSSSSS with no offset.
    """

    model_config = {
        "populate_by_name": True,
        "alias_generator": to_camel,
        "extra": "ignore",
    }

    @model_serializer(mode="wrap")
    def _serialize(self, handler):
        return _to_naive_iso(handler(self))


class DocOut(ApiModel):
    """
    Base for stored documents echoed back to clients: ``_id`` as a string.
    """
    id: PyObjectId = Field(alias="_id")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DataResponse(ApiModel, Generic[T]):
    success: bool = True
    data: T


class ListResponse(ApiModel, Generic[T]):
    success: bool = True
    count: int
    total: Optional[int] = None
    page: Optional[int] = None
    pages: Optional[int] = None
    data: List[T]


class MessageResponse(ApiModel):
    success: bool = True
    message: str


class CountResponse(ApiModel):
    success: bool = True
    count: int
    message: Optional[str] = None


def paged(items: List, total: int, page: int, limit: int) -> dict:
    pages = (total + limit - 1) // limit if limit else 1
    return {"count": len(items), "total": total, "page": page, "pages": pages, "data": items}
