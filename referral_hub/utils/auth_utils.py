# referral_hub/utils/auth_utils.py
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from bson import ObjectId

from . import jwt_utils
from ..db.mongo import BUSINESSES, CUSTOMERS, USERS, get_db
from .errors import Forbidden, NotFound

# Bearer scheme for typical HTTP routes
bearer_scheme = HTTPBearer(auto_error=True)


# ------------------------------------------------------------------
# Internal helper
# ------------------------------------------------------------------
async def _load_user_or_401(user_id: str):
    if not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload.")

    user = await get_db()[USERS].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found.")
    return user


# ------------------------------------------------------------------
# Public dependencies
# ------------------------------------------------------------------
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
):
    """
    Validates Bearer JWT and loads the user. Returns the Mongo user document
    (with ObjectId _id).
    """
    if not jwt_utils.SECRET_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="JWT secret not configured.")

    try:
        payload = jwt_utils.decode_jwt_token(credentials.credentials)
        user_id = payload.get("user_id")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload.")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")

    return await _load_user_or_401(user_id)


async def get_current_business(user: dict = Depends(get_current_user)):
    """
    The active Business owned by the caller. Every tenant-scoped route hangs
    off this.
    """
    if user.get("role") != "business":
        raise Forbidden("Business account required")
    business = await get_db()[BUSINESSES].find_one({"user": user["_id"], "active": {"$ne": False}})
    if not business:
        raise NotFound("Business profile not found")
    return business


async def get_current_customer(user: dict = Depends(get_current_user)):
    customer = await get_db()[CUSTOMERS].find_one({"user": user["_id"], "active": {"$ne": False}})
    if not customer:
        raise NotFound("Customer profile not found")
    return customer
