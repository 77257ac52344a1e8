import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("MONGODB_TRANSACTIONS", "off")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from referral_hub.db.mongo import BUSINESSES, CAMPAIGNS, CUSTOMERS, USERS, init_db_indexes, use_database  # noqa: E402
from referral_hub.models.auth import UserModel  # noqa: E402
from referral_hub.models.business_model import BusinessModel  # noqa: E402
from referral_hub.models.campaign_model import CampaignModel  # noqa: E402
from referral_hub.models.customer_model import CustomerModel  # noqa: E402
from referral_hub.services import notify  # noqa: E402
from referral_hub.services.email_service import NotificationResult, SmsNotifier  # noqa: E402
from referral_hub.services.referral_ledger import ReferralLedger  # noqa: E402


class FakeClock:
    """
    Whole seconds only; mongomock truncates datetimes to milliseconds.
    """

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent = []

    async def send(self, address, subject, body, from_name=None):
        self.sent.append({"address": address, "subject": subject, "body": body})
        if self.succeed:
            return NotificationResult(success=True, id=f"msg-{len(self.sent)}")
        return NotificationResult(success=False, error="mailbox unavailable")


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 12, 0, 0))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["referral_hub_test"]
    await init_db_indexes(database)
    use_database(database, client, transactions=False)
    yield database
    await notify.drain()


@pytest.fixture
async def business(db, clock):
    user = UserModel.build(email="owner@shop.com", name="Owner", role="business", created_at=clock()).to_mongo()
    user["_id"] = (await db[USERS].insert_one(user)).inserted_id
    doc = BusinessModel.build(
        user=user["_id"],
        business_name="Corner Shop",
        contact_email="owner@shop.com",
        created_at=clock(),
        updated_at=clock(),
    ).to_mongo()
    doc["_id"] = (await db[BUSINESSES].insert_one(doc)).inserted_id
    return doc


@pytest.fixture
async def campaign(db, business, clock):
    doc = CampaignModel.build(
        business=business["_id"],
        name="Spring friends",
        status="active",
        referrer_reward={"type": "fixed", "value": 10, "description": "$10 off"},
        referee_reward={"type": "fixed", "value": 5, "description": "$5 off"},
        start_date=clock(),
        created_at=clock(),
        updated_at=clock(),
    ).to_mongo()
    doc["_id"] = (await db[CAMPAIGNS].insert_one(doc)).inserted_id
    return doc


@pytest.fixture
async def referrer(db, business, clock):
    doc = CustomerModel.build(
        business=business["_id"],
        name="Rita",
        email="rita@x.com",
        source="direct",
        created_at=clock(),
        updated_at=clock(),
    ).to_mongo()
    doc["_id"] = (await db[CUSTOMERS].insert_one(doc)).inserted_id
    return doc


@pytest.fixture
def ledger(db, clock, notifier):
    sms = SmsNotifier(account_sid=None, auth_token=None, from_number=None)
    return ReferralLedger(db, clock=clock, notifier=notifier, sms_notifier=sms)


class CounterReader:
    def __init__(self, db):
        self.db = db

    async def campaign(self, campaign_id) -> dict:
        return (await self.db[CAMPAIGNS].find_one({"_id": campaign_id}))["statistics"]

    async def customer(self, customer_id) -> dict:
        return (await self.db[CUSTOMERS].find_one({"_id": customer_id}))["referralStats"]


@pytest.fixture
def stats(db):
    return CounterReader(db)
