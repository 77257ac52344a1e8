import logging

from fastapi import HTTPException, status
from pymongo.errors import DuplicateKeyError

from ..db.mongo import BUSINESSES, CUSTOMERS, USERS, get_db
from ..db.transaction import unit_of_work
from ..models.auth import UserModel
from ..models.business_model import BusinessModel
from ..models.customer_model import CustomerModel
from ..schemas.auth_schema import AuthResponse, LoginRequest, MeResponse, RegisterRequest, UserOut
from ..utils.codes import as_oid
from ..utils.datetime_utils import now_utc
from ..utils.errors import AlreadyExists, NotFound, ValidationError
from ..utils.hashing import hash_password, verify_password
from ..utils.jwt_utils import create_jwt_token

logger = logging.getLogger(__name__)


async def _user_out(user: dict) -> UserOut:
    """
    User plus the tenant it acts for: its Business for business accounts,
    its Customer (and that customer's business) for customer accounts.
    """
    db = get_db()
    extra: dict = {}
    if user.get("role") == "business":
        business = await db[BUSINESSES].find_one({"user": user["_id"]}, {"businessName": 1})
        if business:
            extra = {"business_id": business["_id"], "business_name": business.get("businessName")}
    else:
        customer = await db[CUSTOMERS].find_one({"user": user["_id"]}, {"business": 1})
        if customer:
            extra = {"customer_id": customer["_id"], "business_id": customer["business"]}
            business = await db[BUSINESSES].find_one({"_id": customer["business"]}, {"businessName": 1})
            if business:
                extra["business_name"] = business.get("businessName")

    return UserOut(
        _id=user["_id"],
        name=user.get("name"),
        email=user["email"],
        role=user.get("role", "business"),
        **extra,
    )


# -----------------------
# Register
# -----------------------
async def register_user(data: RegisterRequest) -> AuthResponse:
    db = get_db()
    email = data.email.lower()
    if await db[USERS].find_one({"email": email}, {"_id": 1}):
        raise AlreadyExists("User with this email already exists")

    business_oid = None
    if data.role == "customer":
        if not data.business_id:
            raise ValidationError("businessId is required for customer accounts")
        business_oid = as_oid(data.business_id, "business id")
        if not await db[BUSINESSES].find_one({"_id": business_oid, "active": {"$ne": False}}, {"_id": 1}):
            raise NotFound("Business not found")

    now = now_utc()
    user_doc = UserModel.build(
        email=email,
        name=data.name,
        password_hash=hash_password(data.password),
        role=data.role,
        created_at=now,
    ).to_mongo()

    try:
        async with unit_of_work("register") as uow:
            result = await db[USERS].insert_one(user_doc, session=uow.session)
            user_doc["_id"] = result.inserted_id
            user_id = result.inserted_id

            async def _drop_user():
                await db[USERS].delete_one({"_id": user_id})

            uow.on_rollback(_drop_user)

            if data.role == "business":
                business = BusinessModel.build(
                    user=user_id,
                    business_name=data.business_name or f"{data.name}'s Business",
                    industry=data.industry,
                    website=data.website,
                    contact_email=email,
                    contact_phone=data.phone,
                    created_at=now,
                    updated_at=now,
                ).to_mongo()
                b = await db[BUSINESSES].insert_one(business, session=uow.session)

                async def _drop_business():
                    await db[BUSINESSES].delete_one({"_id": b.inserted_id})

                uow.on_rollback(_drop_business)
            else:
                await _attach_customer(db, business_oid, user_id, data, email, now, uow)
    except DuplicateKeyError:
        raise AlreadyExists("User with this email already exists")

    logger.info("Registered %s account %s", data.role, email)
    token = create_jwt_token({"user_id": str(user_doc["_id"])})
    return AuthResponse(token=token, user=await _user_out(user_doc))


async def _attach_customer(db, business_oid, user_id, data: RegisterRequest, email: str, now, uow) -> None:
    """
    Link the new login to the business's Customer with the same email, or
    create a direct Customer for it.
    """
    existing = await db[CUSTOMERS].find_one(
        {"business": business_oid, "email": email, "user": None}, session=uow.session
    )
    if existing:
        await db[CUSTOMERS].update_one(
            {"_id": existing["_id"]}, {"$set": {"user": user_id, "updatedAt": now}}, session=uow.session
        )

        async def _unlink():
            await db[CUSTOMERS].update_one({"_id": existing["_id"]}, {"$unset": {"user": ""}})

        uow.on_rollback(_unlink)
        return

    customer = CustomerModel.build(
        business=business_oid,
        user=user_id,
        name=data.name,
        email=email,
        phone=data.phone,
        source="direct",
        created_at=now,
        updated_at=now,
    ).to_mongo()
    c = await db[CUSTOMERS].insert_one(customer, session=uow.session)

    async def _drop_customer():
        await db[CUSTOMERS].delete_one({"_id": c.inserted_id})

    uow.on_rollback(_drop_customer)


# -----------------------
# Login with email & password
# -----------------------
async def login_with_email_password(data: LoginRequest) -> AuthResponse:
    user = await get_db()[USERS].find_one({"email": data.email.lower()})
    if not user or not verify_password(data.password, user.get("passwordHash", "")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_jwt_token({"user_id": str(user["_id"])})
    return AuthResponse(token=token, user=await _user_out(user))


async def get_authenticated_user(current_user: dict) -> MeResponse:
    return MeResponse(user=await _user_out(current_user))
