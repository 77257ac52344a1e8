# referral_hub/services/counters.py
"""
The only writer of Campaign.statistics and Customer.referralStats.

Counters move with atomic $inc; a decrement only matches while the field is
large enough, so counters never go below zero even when the same transition is
replayed or two writers race.
"""
import logging
from typing import Dict, Union

from bson import ObjectId

from ..db.transaction import UnitOfWork

logger = logging.getLogger(__name__)

Number = Union[int, float]

CAMPAIGN_PREFIX = "statistics"
CUSTOMER_PREFIX = "referralStats"


async def apply_delta(
    collection,
    doc_id: ObjectId,
    prefix: str,
    delta: Dict[str, Number],
    uow: UnitOfWork,
) -> Dict[str, Number]:
    """
    Apply ``delta`` to ``<prefix>.<field>`` on one document and register the
    inverse with the unit of work. Returns what was actually applied.
    """
    delta = {k: v for k, v in delta.items() if v}
    if not delta:
        return {}

    guard = {f"{prefix}.{k}": {"$gte": -v} for k, v in delta.items() if v < 0}
    result = await collection.update_one(
        {"_id": doc_id, **guard},
        {"$inc": {f"{prefix}.{k}": v for k, v in delta.items()}},
        session=uow.session,
    )

    if result.matched_count:
        applied = dict(delta)
    else:
        # at least one decrement would cross zero; apply field by field
        applied = {}
        for field, v in delta.items():
            query = {"_id": doc_id}
            if v < 0:
                query[f"{prefix}.{field}"] = {"$gte": -v}
            r = await collection.update_one(
                query, {"$inc": {f"{prefix}.{field}": v}}, session=uow.session
            )
            if r.matched_count:
                applied[field] = v
            elif v < 0:
                logger.warning(
                    "%s.%s on %s already at zero, decrement skipped", prefix, field, doc_id
                )

    if applied:
        inverse = {f"{prefix}.{k}": -v for k, v in applied.items()}

        async def _undo():
            await collection.update_one({"_id": doc_id}, {"$inc": inverse})

        uow.on_rollback(_undo)
    return applied
