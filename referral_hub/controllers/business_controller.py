# referral_hub/controllers/business_controller.py
import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.mongo import BUSINESSES, CAMPAIGNS, get_db
from ..models.business_model import BusinessModel
from ..schemas.business_schema import (
    BusinessCreate,
    BusinessOut,
    BusinessPublicOut,
    BusinessUpdate,
    SettingsIn,
)
from ..schemas.common import DataResponse, MessageResponse
from ..utils.codes import as_oid
from ..utils.datetime_utils import now_utc
from ..utils.errors import AlreadyExists, NotFound, ValidationError

logger = logging.getLogger(__name__)


async def create_business(user: dict, data: BusinessCreate) -> DataResponse[BusinessOut]:
    db = get_db()
    if await db[BUSINESSES].find_one({"user": user["_id"]}, {"_id": 1}):
        raise AlreadyExists("Business profile already exists for this user")

    now = now_utc()
    body = data.model_dump(exclude_none=True)
    doc = BusinessModel.build(user=user["_id"], created_at=now, updated_at=now, **body).to_mongo()
    try:
        result = await db[BUSINESSES].insert_one(doc)
    except DuplicateKeyError:
        raise AlreadyExists("Business profile already exists for this user")
    doc["_id"] = result.inserted_id
    logger.info("Business %s created for user %s", doc["_id"], user["_id"])
    return DataResponse(data=BusinessOut.model_validate(doc))


async def get_business(business: dict) -> DataResponse[BusinessOut]:
    return DataResponse(data=BusinessOut.model_validate(business))


async def update_business(business: dict, data: BusinessUpdate) -> DataResponse[BusinessOut]:
    update = data.model_dump(by_alias=True, exclude_none=True)
    if not update:
        raise ValidationError("No changes provided")
    update["updatedAt"] = now_utc()

    updated = await get_db()[BUSINESSES].find_one_and_update(
        {"_id": business["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return DataResponse(data=BusinessOut.model_validate(updated))


async def update_settings(business: dict, data: SettingsIn) -> DataResponse[BusinessOut]:
    changes = data.model_dump(by_alias=True, exclude_none=True)
    if not changes:
        raise ValidationError("No settings provided")
    update = {f"settings.{k}": v for k, v in changes.items()}
    update["updatedAt"] = now_utc()

    updated = await get_db()[BUSINESSES].find_one_and_update(
        {"_id": business["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return DataResponse(data=BusinessOut.model_validate(updated))


async def deactivate_business(business: dict) -> MessageResponse:
    """
    Soft delete: the business and its campaigns stop taking referrals, the
    history stays.
    """
    db = get_db()
    now = now_utc()
    await db[BUSINESSES].update_one({"_id": business["_id"]}, {"$set": {"active": False, "updatedAt": now}})
    await db[CAMPAIGNS].update_many(
        {"business": business["_id"], "active": True},
        {"$set": {"active": False, "updatedAt": now}},
    )
    logger.info("Business %s deactivated", business["_id"])
    return MessageResponse(message="Business deactivated")


async def get_public_business(business_id: str) -> DataResponse[BusinessPublicOut]:
    business = await get_db()[BUSINESSES].find_one(
        {"_id": as_oid(business_id, "business id"), "active": {"$ne": False}}
    )
    if not business:
        raise NotFound("Business not found")
    return DataResponse(data=BusinessPublicOut.model_validate(business))
