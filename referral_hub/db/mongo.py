# referral_hub/db/mongo.py
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

load_dotenv()

logger = logging.getLogger(__name__)

MONGO_URL = os.getenv("MONGODB_URL")
MONGO_DB_NAME = os.getenv("MONGODB_DB", "referral_hub")
# auto | on | off
MONGO_TRANSACTIONS = (os.getenv("MONGODB_TRANSACTIONS", "auto") or "auto").strip().lower()

# Collections
USERS = "users"
BUSINESSES = "businesses"
CUSTOMERS = "customers"
CAMPAIGNS = "campaigns"
REFERRALS = "referrals"
REWARDS = "rewards"
ANALYTICS = "analytics"

_client = None
_db: Optional[AsyncIOMotorDatabase] = None
_transactions_enabled: bool = MONGO_TRANSACTIONS == "on"


def get_client():
    global _client
    if _client is None:
        if not MONGO_URL:
            raise RuntimeError("MONGODB_URL env var is not set")
        _client = AsyncIOMotorClient(MONGO_URL)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    global _db
    if _db is None:
        _db = get_client()[MONGO_DB_NAME]
    return _db


def use_database(db, client=None, transactions: bool = False) -> None:
    """
    Point the app at an already-built database (tests, scripts).
    """
    global _db, _client, _transactions_enabled
    _db = db
    _client = client if client is not None else getattr(db, "client", None)
    _transactions_enabled = transactions


def transactions_enabled() -> bool:
    return _transactions_enabled


async def detect_transaction_support() -> bool:
    """
    Multi-document transactions need a replica set or a sharded cluster.
    MONGODB_TRANSACTIONS=on/off skips the probe.
    """
    global _transactions_enabled
    if MONGO_TRANSACTIONS in ("on", "off"):
        _transactions_enabled = MONGO_TRANSACTIONS == "on"
        return _transactions_enabled

    try:
        hello = await get_client().admin.command("hello")
    except PyMongoError as e:
        logger.warning("Could not probe MongoDB topology, transactions disabled: %s", e)
        _transactions_enabled = False
        return False

    _transactions_enabled = bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"
    logger.info(
        "MongoDB transactions %s",
        "enabled" if _transactions_enabled else "disabled (compensating mode)",
    )
    return _transactions_enabled


async def init_db_indexes(db: Optional[AsyncIOMotorDatabase] = None) -> None:
    db = db if db is not None else get_db()

    # Users: unique email
    await db[USERS].create_index("email", unique=True)

    # Businesses: one per owner
    await db[BUSINESSES].create_index("user", unique=True)

    # Customers: tenant-scoped lookups
    await db[CUSTOMERS].create_index([("business", 1), ("email", 1)])
    await db[CUSTOMERS].create_index([("business", 1), ("createdAt", -1)])
    await db[CUSTOMERS].create_index("user")

    # Campaigns
    await db[CAMPAIGNS].create_index([("business", 1), ("status", 1)])

    # Referrals: the code is the claim token for clicks and conversions
    await db[REFERRALS].create_index("referralCode", unique=True)
    await db[REFERRALS].create_index([("business", 1), ("status", 1), ("createdAt", -1)])
    await db[REFERRALS].create_index([("campaign", 1), ("createdAt", -1)])
    await db[REFERRALS].create_index([("referrer", 1), ("createdAt", -1)])
    await db[REFERRALS].create_index([("status", 1), ("expiresAt", 1)])

    # Rewards: one per (referral, role); unique claim code
    await db[REWARDS].create_index("code", unique=True)
    await db[REWARDS].create_index(
        [("referral", 1), ("recipientType", 1)],
        unique=True,
        name="referral_recipientType_unique",
    )
    await db[REWARDS].create_index([("recipient", 1), ("status", 1)])
    await db[REWARDS].create_index([("business", 1), ("createdAt", -1)])

    # Analytics snapshots: one per business/period/day
    await db[ANALYTICS].create_index(
        [("business", 1), ("period", 1), ("day", 1)],
        unique=True,
        name="business_period_day_unique",
    )
