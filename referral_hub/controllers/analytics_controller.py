# referral_hub/controllers/analytics_controller.py
"""
Analytics rollup: one snapshot per business, period and day, generated when
an external caller (cron) asks for it. Snapshots are computed from reads that
are not isolated from concurrent writes, so a snapshot can be a few writes
behind the ledger.
"""
import logging
from datetime import timedelta
from typing import Dict, Optional

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from ..db.mongo import ANALYTICS, CAMPAIGNS, CUSTOMERS, REFERRALS, REWARDS, get_db
from ..models.analytics_model import (
    AnalyticsModel,
    CampaignCounts,
    CustomerCounts,
    ReferralCounts,
    RewardCounts,
    SharingCounts,
)
from ..schemas.analytics_schema import AnalyticsOut, GenerateAnalyticsRequest
from ..schemas.common import DataResponse, ListResponse
from ..utils.datetime_utils import Clock, now_utc, start_of_day
from ..utils.errors import AlreadyExists, ValidationError

logger = logging.getLogger(__name__)

PERIODS = ("daily", "weekly", "monthly", "yearly")

# look-back window for "new customers"
PERIOD_WINDOW = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
    "yearly": timedelta(days=365),
}

SHARING_METHODS = ("sms", "email", "facebook", "twitter", "whatsapp", "copy", "other")


async def _group_counts(coll, match: dict, field: str) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    pipeline = [{"$match": match}, {"$group": {"_id": f"${field}", "count": {"$sum": 1}}}]
    async for row in coll.aggregate(pipeline):
        counts[row["_id"]] = row["count"]
    return counts


async def _referral_counts(db, business_id) -> ReferralCounts:
    by_status = await _group_counts(db[REFERRALS], {"business": business_id}, "status")
    return ReferralCounts(
        total=sum(by_status.values()),
        **{k: v for k, v in by_status.items() if k in ReferralCounts.model_fields},
    )


async def _campaign_counts(db, business_id, referrals: ReferralCounts) -> CampaignCounts:
    active = ended = total_referrals = 0
    async for c in db[CAMPAIGNS].find({"business": business_id}, {"active": 1, "statistics.totalReferrals": 1}):
        if c.get("active", True):
            active += 1
        else:
            ended += 1
        total_referrals += (c.get("statistics") or {}).get("totalReferrals") or 0
    successful = referrals.converted + referrals.rewarded
    rate = round(successful / referrals.total * 100, 2) if referrals.total else 0
    return CampaignCounts(active=active, ended=ended, total_referrals=total_referrals, conversion_rate=rate)


async def _customer_counts(db, business_id, period: str, now) -> CustomerCounts:
    coll = db[CUSTOMERS]
    scope = {"business": business_id}
    return CustomerCounts(
        total=await coll.count_documents(scope),
        new=await coll.count_documents({**scope, "createdAt": {"$gte": now - PERIOD_WINDOW[period]}}),
        active=await coll.count_documents({**scope, "active": {"$ne": False}}),
        referred=await coll.count_documents({**scope, "source": "referral"}),
    )


async def _reward_counts(db, business_id) -> RewardCounts:
    counts = RewardCounts()
    pipeline = [
        {"$match": {"business": business_id}},
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "value": {"$sum": "$value"}}},
    ]
    async for row in db[REWARDS].aggregate(pipeline):
        counts.total += row["count"]
        counts.total_value += row.get("value") or 0
        if row["_id"] in ("issued", "claimed", "expired"):
            setattr(counts, row["_id"], row["count"])
    return counts


async def _sharing_counts(db, business_id) -> SharingCounts:
    by_method = await _group_counts(db[REFERRALS], {"business": business_id}, "sharingMethod")
    values = {m: 0 for m in SHARING_METHODS}
    for method, count in by_method.items():
        values[method if method in values else "other"] += count
    return SharingCounts(**values)


async def build_snapshot(db, business_id, period: str, now) -> dict:
    referrals = await _referral_counts(db, business_id)
    return AnalyticsModel(
        business=business_id,
        period=period,
        date=now,
        day=start_of_day(now),
        referrals=referrals,
        campaigns=await _campaign_counts(db, business_id, referrals),
        customers=await _customer_counts(db, business_id, period, now),
        rewards=await _reward_counts(db, business_id),
        sharing=await _sharing_counts(db, business_id),
        created_at=now,
    ).to_mongo()


async def generate_analytics(
    business: dict,
    data: GenerateAnalyticsRequest,
    clock: Clock = now_utc,
) -> DataResponse[AnalyticsOut]:
    db = get_db()
    now = clock()
    period = data.period
    exists = await db[ANALYTICS].find_one(
        {"business": business["_id"], "period": period, "day": start_of_day(now)}, {"_id": 1}
    )
    if exists:
        raise AlreadyExists(f"{period} analytics already generated for today")

    doc = await build_snapshot(db, business["_id"], period, now)
    try:
        result = await db[ANALYTICS].insert_one(doc)
    except DuplicateKeyError:
        # a concurrent request won
        raise AlreadyExists(f"{period} analytics already generated for today")
    doc["_id"] = result.inserted_id
    logger.info("Generated %s analytics for business %s", period, business["_id"])
    return DataResponse(data=AnalyticsOut.model_validate(doc))


async def get_analytics_history(
    business: dict,
    period: Optional[str] = None,
    limit: int = 30,
) -> ListResponse[AnalyticsOut]:
    query: dict = {"business": business["_id"]}
    if period:
        if period not in PERIODS:
            raise ValidationError("Invalid period. Must be one of: daily, weekly, monthly, yearly")
        query["period"] = period
    limit = max(1, min(limit, 365))
    docs = await get_db()[ANALYTICS].find(query).sort("date", DESCENDING).limit(limit).to_list(length=limit)
    return ListResponse(count=len(docs), data=[AnalyticsOut.model_validate(d) for d in docs])
