# referral_hub/controllers/customer_controller.py
import logging
import re
from typing import Optional

from pymongo import DESCENDING, ReturnDocument

from ..db.mongo import CUSTOMERS, get_db
from ..models.customer_model import CustomerModel
from ..schemas.common import DataResponse, ListResponse, MessageResponse, paged
from ..schemas.customer_schema import CustomerCreate, CustomerOut, CustomerUpdate
from ..utils.codes import as_oid
from ..utils.datetime_utils import now_utc
from ..utils.errors import AlreadyExists, NotFound, ValidationError
from .referral_controller import get_ledger

logger = logging.getLogger(__name__)


async def _customer_or_404(business: dict, customer_id: str) -> dict:
    customer = await get_db()[CUSTOMERS].find_one(
        {"_id": as_oid(customer_id, "customer id"), "business": business["_id"]}
    )
    if not customer:
        raise NotFound("Customer not found")
    return customer


async def create_customer(business: dict, data: CustomerCreate) -> DataResponse[CustomerOut]:
    db = get_db()
    email = data.email.lower() if data.email else None
    if email and await db[CUSTOMERS].find_one({"business": business["_id"], "email": email}, {"_id": 1}):
        raise AlreadyExists("Customer with this email already exists")

    if data.referral_code:
        # a referred customer is created by converting the referral
        outcome = await get_ledger().convert_by_code(
            business["_id"],
            data.referral_code,
            data.model_dump(exclude={"referral_code"}, exclude_none=True),
        )
        return DataResponse(data=CustomerOut.model_validate(outcome.customer))

    now = now_utc()
    body = data.model_dump(exclude={"referral_code"}, exclude_none=True)
    doc = CustomerModel.build(business=business["_id"], source="direct", created_at=now, updated_at=now, **body).to_mongo()
    result = await db[CUSTOMERS].insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Customer %s created for business %s", doc["_id"], business["_id"])
    return DataResponse(data=CustomerOut.model_validate(doc))


async def list_customers(
    business: dict,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    source: Optional[str] = None,
) -> ListResponse[CustomerOut]:
    query: dict = {"business": business["_id"]}
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]
    if source:
        query["source"] = source

    page, limit = max(1, page), max(1, min(limit, 100))
    coll = get_db()[CUSTOMERS]
    total = await coll.count_documents(query)
    docs = await coll.find(query).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit).to_list(length=limit)
    return ListResponse(**paged([CustomerOut.model_validate(d) for d in docs], total, page, limit))


async def get_customer(business: dict, customer_id: str) -> DataResponse[CustomerOut]:
    return DataResponse(data=CustomerOut.model_validate(await _customer_or_404(business, customer_id)))


async def get_my_customer(customer: dict) -> DataResponse[CustomerOut]:
    return DataResponse(data=CustomerOut.model_validate(customer))


async def update_customer(business: dict, customer_id: str, data: CustomerUpdate) -> DataResponse[CustomerOut]:
    customer = await _customer_or_404(business, customer_id)
    update = data.model_dump(by_alias=True, exclude_none=True)
    if not update:
        raise ValidationError("No changes provided")

    db = get_db()
    if update.get("email"):
        update["email"] = update["email"].lower()
        clash = await db[CUSTOMERS].find_one(
            {"business": business["_id"], "email": update["email"], "_id": {"$ne": customer["_id"]}},
            {"_id": 1},
        )
        if clash:
            raise AlreadyExists("Customer with this email already exists")
    update["updatedAt"] = now_utc()

    updated = await db[CUSTOMERS].find_one_and_update(
        {"_id": customer["_id"]},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return DataResponse(data=CustomerOut.model_validate(updated))


async def delete_customer(business: dict, customer_id: str) -> MessageResponse:
    """
    Soft delete; referrals and rewards keep pointing at the record.
    """
    customer = await _customer_or_404(business, customer_id)
    await get_db()[CUSTOMERS].update_one(
        {"_id": customer["_id"]}, {"$set": {"active": False, "updatedAt": now_utc()}}
    )
    logger.info("Customer %s deactivated", customer["_id"])
    return MessageResponse(message="Customer deactivated")
