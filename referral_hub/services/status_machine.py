# referral_hub/services/status_machine.py
"""
Transition tables for referrals, rewards and campaigns, plus the mapping from
referral status to the counters it occupies on the Campaign and on the
referrer Customer. Every status change in the service is checked here.
"""
from collections import Counter
from typing import Dict, FrozenSet, Optional

from ..utils.errors import InvalidTransition, ValidationError

# ── Referrals ────────────────────────────────────────────────────────────────
REFERRAL_STATUSES = ("pending", "clicked", "converted", "rewarded", "expired", "rejected")
REFERRAL_TERMINAL = frozenset({"rewarded", "expired", "rejected"})

REFERRAL_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"clicked", "converted", "expired", "rejected"}),
    "clicked": frozenset({"converted", "expired", "rejected"}),
    "converted": frozenset({"rewarded"}),
    "rewarded": frozenset(),
    "expired": frozenset(),
    "rejected": frozenset(),
}

# Which counter a referral sitting in a given status occupies.
CAMPAIGN_COUNTER: Dict[str, Optional[str]] = {
    "pending": "pendingReferrals",
    "clicked": "clickedReferrals",
    "converted": "successfulReferrals",
    "rewarded": "successfulReferrals",
    "expired": None,
    "rejected": None,
}

# Customers do not track clicks: a clicked referral is still pending for them.
CUSTOMER_COUNTER: Dict[str, Optional[str]] = {
    "pending": "pendingReferrals",
    "clicked": "pendingReferrals",
    "converted": "successfulReferrals",
    "rewarded": "successfulReferrals",
    "expired": None,
    "rejected": None,
}

# ── Rewards ──────────────────────────────────────────────────────────────────
REWARD_STATUSES = ("pending", "issued", "claimed", "expired", "cancelled")

REWARD_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"issued", "cancelled"}),
    "issued": frozenset({"claimed", "expired", "cancelled"}),
    "claimed": frozenset(),
    "expired": frozenset(),
    "cancelled": frozenset(),
}

# ── Campaigns ────────────────────────────────────────────────────────────────
CAMPAIGN_STATUSES = ("draft", "active", "paused", "ended", "cancelled")

CAMPAIGN_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "draft": frozenset({"active", "cancelled"}),
    "active": frozenset({"paused", "ended", "cancelled"}),
    "paused": frozenset({"active", "ended", "cancelled"}),
    "ended": frozenset(),
    "cancelled": frozenset(),
}

# Campaigns in these states take no new referrals.
CAMPAIGN_CLOSED = frozenset({"paused", "ended", "cancelled"})


def _check(kind: str, table: Dict[str, FrozenSet[str]], current: str, new: str) -> None:
    if new not in table:
        raise ValidationError(f"Invalid {kind} status: {new}")
    if current not in table:
        raise InvalidTransition(f"{kind.capitalize()} is in unknown status {current!r}")
    if new == current:
        raise InvalidTransition(f"{kind.capitalize()} is already {current}")
    if new not in table[current]:
        raise InvalidTransition(f"Cannot move {kind} from {current} to {new}")


def check_referral_transition(current: str, new: str) -> None:
    _check("referral", REFERRAL_TRANSITIONS, current, new)


def check_reward_transition(current: str, new: str) -> None:
    _check("reward", REWARD_TRANSITIONS, current, new)


def check_campaign_transition(current: str, new: str) -> None:
    _check("campaign", CAMPAIGN_TRANSITIONS, current, new)


def counter_delta(counter_map: Dict[str, Optional[str]], old: Optional[str], new: str) -> Dict[str, int]:
    """
    Signed delta pair for moving one referral from ``old`` to ``new``:
    -1 on the counter ``old`` occupied, +1 on the one ``new`` occupies.
    ``old=None`` means the referral is being created. Zero entries are dropped.
    """
    delta: Counter = Counter()
    if old is not None and counter_map.get(old):
        delta[counter_map[old]] -= 1
    if counter_map.get(new):
        delta[counter_map[new]] += 1
    return {k: v for k, v in delta.items() if v != 0}


def campaign_delta(old: Optional[str], new: str) -> Dict[str, int]:
    delta = counter_delta(CAMPAIGN_COUNTER, old, new)
    if old is None:
        delta["totalReferrals"] = delta.get("totalReferrals", 0) + 1
    return delta


def customer_delta(old: Optional[str], new: str) -> Dict[str, int]:
    delta = counter_delta(CUSTOMER_COUNTER, old, new)
    if old is None:
        delta["totalReferrals"] = delta.get("totalReferrals", 0) + 1
    return delta
