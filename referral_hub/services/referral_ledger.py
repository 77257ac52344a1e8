# referral_hub/services/referral_ledger.py
"""
Referral Ledger: the one place referral status changes happen.

Every mutation runs in a unit of work together with the Campaign/Customer
counter deltas it implies and, on conversion, the rewards it issues. Status
writes are compare-and-set on the status that was read, so two concurrent
callers can never both apply the same delta.
"""
import logging
import os
import re
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
from urllib.parse import quote

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from ..db.mongo import BUSINESSES, CAMPAIGNS, CUSTOMERS, REFERRALS, REWARDS
from ..db.transaction import UnitOfWork, run_with_code_retry, unit_of_work
from ..models.business_model import DEFAULT_REFERRAL_EXPIRATION_DAYS
from ..models.customer_model import CustomerModel
from ..models.referral_model import (
    AnonymousReferee,
    ConversionDetails,
    FollowUp,
    LinkedReferee,
    ReferralModel,
    link_referee,
    referee_from_doc,
)
from ..utils.codes import MAX_CODE_ATTEMPTS, as_oid, normalize_code, referral_code
from ..utils.datetime_utils import Clock, days_from, now_utc
from ..utils.errors import (
    AlreadyConverted,
    AppError,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from . import notify, openai_service
from .counters import CAMPAIGN_PREFIX, CUSTOMER_PREFIX, apply_delta
from .email_service import NotificationResult
from .reward_issuance import RewardIssuer
from .status_machine import (
    CAMPAIGN_CLOSED,
    REFERRAL_STATUSES,
    campaign_delta,
    check_referral_transition,
    customer_delta,
)

logger = logging.getLogger(__name__)

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000").rstrip("/")

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")

OPEN_STATUSES = ("pending", "clicked")


class LedgerOutcome(NamedTuple):
    referral: dict
    customer: Optional[dict] = None
    rewards: Tuple[dict, ...] = ()


def build_referral_link(referrer_id, campaign_id, code: Optional[str] = None) -> str:
    link = f"{CLIENT_URL}/refer/{referrer_id}/{campaign_id}"
    return f"{link}?code={code}" if code else link


def shareable_links(link: str, business_name: Optional[str]) -> Dict[str, str]:
    name = business_name or "us"
    return {
        "default": link,
        "facebook": f"https://www.facebook.com/sharer/sharer.php?u={quote(link, safe='')}",
        "twitter": (
            f"https://twitter.com/intent/tweet?url={quote(link, safe='')}"
            f"&text={quote(f'Check out this special offer from {name}!', safe='')}"
        ),
        "whatsapp": f"https://wa.me/?text={quote(f'Check out this special offer from {name}: {link}', safe='')}",
        "linkedin": f"https://www.linkedin.com/sharing/share-offsite/?url={quote(link, safe='')}",
        "email": (
            f"mailto:?subject={quote(f'Special offer from {name}', safe='')}"
            f"&body={quote(f'I thought you might be interested in this offer: {link}', safe='')}"
        ),
    }


def _restore_fields(collection, doc_id: ObjectId, before: dict, fields):
    """
    Undo step putting ``fields`` back to their values in ``before`` (or
    removing them if they were absent).
    """
    to_set = {f: before[f] for f in fields if f in before}
    to_unset = {f: "" for f in fields if f not in before}
    update = {}
    if to_set:
        update["$set"] = to_set
    if to_unset:
        update["$unset"] = to_unset

    async def _undo():
        if update:
            await collection.update_one({"_id": doc_id}, update)

    return _undo


class ReferralLedger:
    def __init__(
        self,
        db,
        clock: Clock = now_utc,
        notifier=None,
        sms_notifier=None,
        issuer: Optional[RewardIssuer] = None,
        client=None,
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier
        self.sms_notifier = sms_notifier
        self.issuer = issuer or RewardIssuer(db, clock)
        self.client = client

        self.referrals = db[REFERRALS]
        self.campaigns = db[CAMPAIGNS]
        self.customers = db[CUSTOMERS]
        self.businesses = db[BUSINESSES]
        self.rewards = db[REWARDS]

    def _uow(self, label: str):
        return unit_of_work(label, client=self.client)

    # ── lookups ───────────────────────────────────────────────────────────────
    async def _business(self, business_id) -> dict:
        business = await self.businesses.find_one({"_id": as_oid(business_id, "business id")})
        if not business or business.get("active") is False:
            raise NotFound("Business profile not found")
        return business

    async def _campaign(self, business_id: ObjectId, campaign_id) -> dict:
        campaign = await self.campaigns.find_one(
            {"_id": as_oid(campaign_id, "campaign id"), "business": business_id}
        )
        if not campaign:
            raise NotFound("Campaign not found")
        return campaign

    async def _customer(self, business_id: ObjectId, customer_id, label: str = "Customer") -> dict:
        customer = await self.customers.find_one(
            {"_id": as_oid(customer_id, "customer id"), "business": business_id}
        )
        if not customer:
            raise NotFound(f"{label} not found")
        return customer

    async def _referral(self, business_id, referral_id) -> dict:
        referral = await self.referrals.find_one(
            {"_id": as_oid(referral_id, "referral id"), "business": as_oid(business_id, "business id")}
        )
        if not referral:
            raise NotFound("Referral not found")
        return referral

    def _ensure_open(self, campaign: dict) -> None:
        if campaign.get("status") in CAMPAIGN_CLOSED or campaign.get("active") is False:
            raise ValidationError("Campaign is not accepting referrals")
        end_date = campaign.get("endDate")
        if end_date is not None and end_date < self.clock():
            raise ValidationError("Campaign has ended")

    @staticmethod
    def _referral_days(campaign: dict, business: dict) -> int:
        return (
            campaign.get("referralExpirationDays")
            or (business.get("settings") or {}).get("defaultReferralExpiration")
            or DEFAULT_REFERRAL_EXPIRATION_DAYS
        )

    # ── creation ──────────────────────────────────────────────────────────────
    async def create_referral(
        self,
        business_id,
        campaign_id,
        referrer_id,
        referee: Optional[dict] = None,
        sharing_method: str = "other",
        notes: Optional[str] = None,
    ) -> dict:
        business = await self._business(business_id)
        campaign = await self._campaign(business["_id"], campaign_id)
        referrer = await self._customer(business["_id"], referrer_id, "Referrer")
        self._ensure_open(campaign)

        snapshot = None
        if referee:
            email = (referee.get("email") or "").strip().lower() or None
            snapshot = AnonymousReferee.build(**{**referee, "email": email, "converted_to_customer": False})
            if snapshot.email:
                existing = await self.customers.find_one({"business": business["_id"], "email": snapshot.email})
                if existing:
                    snapshot = link_referee(snapshot, existing)

        referral = await self._insert_referral(business, campaign, referrer, snapshot, sharing_method, notes)
        self._invite_referee(referral, campaign, business, referrer)
        return referral

    async def _insert_referral(
        self,
        business: dict,
        campaign: dict,
        referrer: dict,
        referee,
        sharing_method: str = "other",
        notes: Optional[str] = None,
        status: str = "pending",
    ) -> dict:
        async def _once() -> dict:
            now = self.clock()
            code = referral_code()
            doc = ReferralModel.build(
                campaign=campaign["_id"],
                business=business["_id"],
                referrer=referrer["_id"],
                referee=referee,
                status=status,
                referral_code=code,
                referral_link=build_referral_link(referrer["_id"], campaign["_id"], code),
                sharing_method=sharing_method or "other",
                last_clicked_at=now if status == "clicked" else None,
                click_count=1 if status == "clicked" else 0,
                expires_at=days_from(now, self._referral_days(campaign, business)),
                notes=notes,
                created_at=now,
                updated_at=now,
            ).to_mongo()

            async with self._uow("create referral") as uow:
                result = await self.referrals.insert_one(doc, session=uow.session)
                doc["_id"] = result.inserted_id
                referral_id = result.inserted_id

                async def _undo():
                    await self.referrals.delete_one({"_id": referral_id})

                uow.on_rollback(_undo)
                await apply_delta(self.campaigns, campaign["_id"], CAMPAIGN_PREFIX, campaign_delta(None, status), uow)
                await apply_delta(self.customers, referrer["_id"], CUSTOMER_PREFIX, customer_delta(None, status), uow)
            return doc

        referral = await run_with_code_retry(_once, MAX_CODE_ATTEMPTS, "referral code")
        logger.info(
            "Referral %s created for campaign %s by %s (%s)",
            referral["referralCode"], campaign["_id"], referrer["_id"], status,
        )
        return referral

    def _invite_referee(self, referral: dict, campaign: dict, business: dict, referrer: dict) -> None:
        email = (referral.get("referee") or {}).get("email")
        if not email or (business.get("settings") or {}).get("emailNotifications") is False:
            return
        business_name = business.get("businessName")
        template = (campaign.get("defaultMessage") or {}).get("email") or {}
        referee_name = referral["referee"].get("name") or "there"
        subject = template.get("subject") or f"{referrer.get('name')} has referred you to {business_name}"
        body = template.get("body") or (
            f"Hello {referee_name},\n\n{referrer.get('name')} thinks you might be interested in {business_name}.\n\n"
            f"Click the link below to learn more and claim your special offer:\n{referral.get('referralLink')}\n\n"
            "Thank you!"
        )
        notify.send_bg(self.notifier, email, subject, body, from_name=business_name)

    async def generate_share_link(self, business_id, campaign_id, customer_id) -> Dict:
        """
        Get-or-create the open share referral (no referee named yet) for a
        campaign and referrer, plus per-platform share URLs.
        """
        business = await self._business(business_id)
        campaign = await self._campaign(business["_id"], campaign_id)
        referrer = await self._customer(business["_id"], customer_id)

        referral = await self.referrals.find_one(
            {
                "campaign": campaign["_id"],
                "referrer": referrer["_id"],
                "referee": None,
                "status": {"$in": list(OPEN_STATUSES)},
                "expiresAt": {"$gt": self.clock()},
            },
            sort=[("createdAt", DESCENDING)],
        )
        if referral is None:
            self._ensure_open(campaign)
            referral = await self._insert_referral(business, campaign, referrer, None, "copy")

        return {
            "referral": referral,
            "referralCode": referral["referralCode"],
            "referralLink": referral["referralLink"],
            "shareableLinks": shareable_links(referral["referralLink"], business.get("businessName")),
        }

    # ── clicks ────────────────────────────────────────────────────────────────
    async def _resolve_click_target(self, id_or_code: str) -> Optional[dict]:
        key = (id_or_code or "").strip()
        if _OBJECT_ID.match(key):
            oid = ObjectId(key)
            referral = await self.referrals.find_one({"_id": oid})
            if referral:
                return referral
            # public landing pages only know the campaign
            return await self.referrals.find_one({"campaign": oid}, sort=[("createdAt", DESCENDING)])
        code = normalize_code(key)
        if not code:
            return None
        return await self.referrals.find_one({"referralCode": code})

    async def track_click(self, id_or_code: str) -> dict:
        referral = await self._resolve_click_target(id_or_code)
        if not referral:
            raise NotFound("Referral not found")
        now = self.clock()
        expires_at = referral.get("expiresAt")
        if expires_at is not None and expires_at < now:
            raise NotFound("Referral link has expired")

        if referral["status"] == "pending":
            async with self._uow("track click") as uow:
                updated = await self.referrals.find_one_and_update(
                    {"_id": referral["_id"], "status": "pending"},
                    {
                        "$set": {"status": "clicked", "lastClickedAt": now, "updatedAt": now},
                        "$inc": {"clickCount": 1},
                    },
                    session=uow.session,
                    return_document=ReturnDocument.AFTER,
                )
                if updated is not None:
                    restore = _restore_fields(self.referrals, referral["_id"], referral, ("status", "lastClickedAt", "updatedAt"))

                    async def _undo():
                        await self.referrals.update_one({"_id": referral["_id"]}, {"$inc": {"clickCount": -1}})
                        await restore()

                    uow.on_rollback(_undo)
                    await apply_delta(self.campaigns, referral["campaign"], CAMPAIGN_PREFIX, campaign_delta("pending", "clicked"), uow)
                    await apply_delta(self.customers, referral["referrer"], CUSTOMER_PREFIX, customer_delta("pending", "clicked"), uow)
            if updated is not None:
                logger.info("Referral %s moved pending -> clicked", referral["_id"])
                return updated

        # already past pending (or lost the race): just count the click
        return await self.referrals.find_one_and_update(
            {"_id": referral["_id"]},
            {"$set": {"lastClickedAt": now, "updatedAt": now}, "$inc": {"clickCount": 1}},
            return_document=ReturnDocument.AFTER,
        )

    # ── transitions ───────────────────────────────────────────────────────────
    async def _cas_status(self, referral: dict, updates: dict, uow: UnitOfWork) -> dict:
        updated = await self.referrals.find_one_and_update(
            {"_id": referral["_id"], "status": referral["status"]},
            {"$set": updates},
            session=uow.session,
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = await self.referrals.find_one({"_id": referral["_id"]}, {"status": 1}, session=uow.session)
            now_status = current.get("status") if current else "deleted"
            raise InvalidTransition(
                f"Referral moved from {referral['status']} to {now_status} concurrently, please retry"
            )
        uow.on_rollback(_restore_fields(self.referrals, referral["_id"], referral, tuple(updates)))
        return updated

    async def _link_referee_customer(
        self,
        referral: dict,
        customer_data: Optional[dict],
        uow: UnitOfWork,
        required: bool = True,
    ) -> Optional[dict]:
        """
        The Customer the referee becomes: the one already linked, an existing
        Customer of the business with the same email, or a new referral
        Customer built from the snapshot overlaid with ``customer_data``.

        With ``required=False`` a referee too anonymous to become a Customer
        (no name to create one from) yields ``None`` instead of an error.
        """
        referee = referee_from_doc(referral.get("referee"))
        if isinstance(referee, LinkedReferee):
            linked = await self.customers.find_one({"_id": referee.customer_id}, session=uow.session)
            if linked:
                return linked

        data = {k: v for k, v in (customer_data or {}).items() if v is not None}
        name = data.get("name") or (referee.name if referee else None)
        email = data.get("email") or (referee.email if referee else None)
        phone = data.get("phone") or (referee.phone if referee else None)
        email = email.strip().lower() if email else None

        if email:
            existing = await self.customers.find_one(
                {"business": referral["business"], "email": email}, session=uow.session
            )
            if existing:
                return existing
        if not name:
            if not required:
                return None
            raise ValidationError("Referee name is required to create a customer")

        now = self.clock()
        tags = list(dict.fromkeys(["referred", *(data.get("tags") or [])]))
        doc = CustomerModel.build(
            business=referral["business"],
            name=name,
            email=email,
            phone=phone,
            address=data.get("address"),
            source="referral",
            referred_by=referral["referrer"],
            referral_campaign=referral["campaign"],
            is_referral=True,
            tags=tags,
            notes=data.get("notes"),
            created_at=now,
            updated_at=now,
        ).to_mongo()
        result = await self.customers.insert_one(doc, session=uow.session)
        doc["_id"] = result.inserted_id
        customer_id = result.inserted_id

        async def _undo():
            await self.customers.delete_one({"_id": customer_id})

        uow.on_rollback(_undo)
        logger.info("Referee of %s became customer %s", referral["_id"], customer_id)
        return doc

    def _conversion_details(self, details: Optional[dict]) -> dict:
        details = details or {}
        return ConversionDetails.build(
            converted_at=self.clock(),
            conversion_type=details.get("conversion_type") or "signup",
            conversion_value=details.get("conversion_value"),
            notes=details.get("notes"),
        ).to_mongo()

    async def _apply_transition(
        self,
        referral_id: ObjectId,
        new_status: str,
        details: Optional[dict] = None,
        customer_data: Optional[dict] = None,
        require_referee: bool = False,
    ) -> LedgerOutcome:
        async with self._uow(f"referral -> {new_status}") as uow:
            referral = await self.referrals.find_one({"_id": referral_id}, session=uow.session)
            if not referral:
                raise NotFound("Referral not found")
            old = referral["status"]
            check_referral_transition(old, new_status)

            campaign = await self.campaigns.find_one({"_id": referral["campaign"]}, session=uow.session)
            now = self.clock()
            updates = {"status": new_status, "updatedAt": now}
            customer = None

            if new_status == "converted":
                if not campaign:
                    raise NotFound("Campaign not found")
                customer = await self._link_referee_customer(referral, customer_data, uow, required=require_referee)
                if customer is not None:
                    updates["referee"] = link_referee(referee_from_doc(referral.get("referee")), customer).to_mongo()
                updates["conversionDetails"] = self._conversion_details(details)
            elif details and details.get("notes"):
                updates["notes"] = details["notes"]

            updated = await self._cas_status(referral, updates, uow)
            await apply_delta(self.campaigns, referral["campaign"], CAMPAIGN_PREFIX, campaign_delta(old, new_status), uow)
            await apply_delta(self.customers, referral["referrer"], CUSTOMER_PREFIX, customer_delta(old, new_status), uow)

            rewards: List[dict] = []
            if new_status == "converted":
                rewards.append(await self.issuer.issue(updated, campaign, "referrer", referral["referrer"], uow))
                if customer is not None:
                    rewards.append(await self.issuer.issue(updated, campaign, "referee", customer["_id"], uow))
            elif new_status == "rewarded":
                rewards = await self.rewards.find({"referral": referral["_id"]}, session=uow.session).to_list(None)
                value = sum(r.get("value") or 0 for r in rewards)
                await apply_delta(
                    self.campaigns, referral["campaign"], CAMPAIGN_PREFIX,
                    {"totalRewards": 1, "totalRewardsValue": value}, uow,
                )
                await apply_delta(self.customers, referral["referrer"], CUSTOMER_PREFIX, {"totalRewardsEarned": 1}, uow)

        logger.info("Referral %s moved %s -> %s", referral_id, old, new_status)
        return LedgerOutcome(updated, customer, tuple(rewards))

    async def _link_after_conversion(
        self,
        referral_id: ObjectId,
        customer_data: Optional[dict],
    ) -> LedgerOutcome:
        """
        Referral already converted/rewarded without a linked referee: link the
        customer and issue the missing referee reward, no status change.
        """
        async with self._uow("link converted referee") as uow:
            referral = await self.referrals.find_one({"_id": referral_id}, session=uow.session)
            if not referral:
                raise NotFound("Referral not found")
            if (referral.get("referee") or {}).get("convertedToCustomer"):
                raise AlreadyConverted("Referee is already converted to a customer")
            campaign = await self.campaigns.find_one({"_id": referral["campaign"]}, session=uow.session)
            if not campaign:
                raise NotFound("Campaign not found")

            customer = await self._link_referee_customer(referral, customer_data, uow)
            updates = {
                "referee": link_referee(referee_from_doc(referral.get("referee")), customer).to_mongo(),
                "updatedAt": self.clock(),
            }
            updated = await self.referrals.find_one_and_update(
                {"_id": referral_id, "referee.convertedToCustomer": {"$ne": True}},
                {"$set": updates},
                session=uow.session,
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                raise AlreadyConverted("Referee is already converted to a customer")
            uow.on_rollback(_restore_fields(self.referrals, referral_id, referral, tuple(updates)))

            reward = await self.issuer.issue(updated, campaign, "referee", customer["_id"], uow)
            if updated["status"] == "rewarded" and reward.get("value"):
                # the rewarded total already counted the rewards that existed then
                await apply_delta(
                    self.campaigns, referral["campaign"], CAMPAIGN_PREFIX,
                    {"totalRewardsValue": reward["value"]}, uow,
                )

        logger.info("Linked late referee %s on referral %s", customer["_id"], referral_id)
        return LedgerOutcome(updated, customer, (reward,))

    async def _notify_rewards(self, rewards: Sequence[dict], business: dict) -> None:
        if (business.get("settings") or {}).get("emailNotifications") is False:
            return
        for reward in rewards:
            try:
                await self.issuer.notify_recipient(
                    reward, "issued", self.notifier, business.get("businessName"), background=True
                )
            except AppError as e:
                logger.warning("Could not queue reward notice for %s: %s", reward.get("_id"), e.detail)

    async def transition_status(
        self,
        business_id,
        referral_id,
        new_status: str,
        details: Optional[dict] = None,
    ) -> LedgerOutcome:
        if new_status not in REFERRAL_STATUSES:
            raise ValidationError(f"Invalid referral status: {new_status}")
        business = await self._business(business_id)
        referral = await self._referral(business["_id"], referral_id)
        check_referral_transition(referral["status"], new_status)

        outcome = await run_with_code_retry(
            lambda: self._apply_transition(referral["_id"], new_status, details),
            MAX_CODE_ATTEMPTS,
            "reward code",
        )
        if new_status == "converted":
            await self._notify_rewards(outcome.rewards, business)
        return outcome

    # ── conversion ────────────────────────────────────────────────────────────
    async def convert_referee(
        self,
        business_id,
        referral_id,
        customer_data: Optional[dict] = None,
        conversion_details: Optional[dict] = None,
    ) -> LedgerOutcome:
        business = await self._business(business_id)
        referral = await self._referral(business["_id"], referral_id)
        if (referral.get("referee") or {}).get("convertedToCustomer"):
            raise AlreadyConverted("Referee is already converted to a customer")

        if referral["status"] in ("converted", "rewarded"):
            outcome = await run_with_code_retry(
                lambda: self._link_after_conversion(referral["_id"], customer_data),
                MAX_CODE_ATTEMPTS,
                "reward code",
            )
        else:
            check_referral_transition(referral["status"], "converted")
            outcome = await run_with_code_retry(
                lambda: self._apply_transition(
                    referral["_id"], "converted", conversion_details, customer_data, require_referee=True
                ),
                MAX_CODE_ATTEMPTS,
                "reward code",
            )

        await self._notify_rewards(outcome.rewards, business)
        return outcome

    async def convert_by_code(
        self,
        business_id,
        code: str,
        customer_data: Optional[dict] = None,
        conversion_details: Optional[dict] = None,
    ) -> LedgerOutcome:
        business_oid = as_oid(business_id, "business id")
        referral = await self.referrals.find_one({"referralCode": normalize_code(code), "business": business_oid})
        if not referral:
            raise NotFound("Invalid referral code")
        return await self.convert_referee(business_oid, referral["_id"], customer_data, conversion_details)

    async def convert_public(
        self,
        campaign_id,
        referrer_id,
        name: str,
        email: str,
        phone: Optional[str] = None,
    ) -> LedgerOutcome:
        if not name or not email:
            raise ValidationError("Missing required fields")
        campaign = await self.campaigns.find_one({"_id": as_oid(campaign_id, "campaign id")})
        if not campaign:
            raise NotFound("Campaign not found")
        business = await self._business(campaign["business"])
        referrer = await self._customer(business["_id"], referrer_id, "Referrer")

        email = email.strip().lower()
        if await self.customers.find_one({"business": business["_id"], "email": email}):
            raise ValidationError("You are already registered as a customer")

        referral = await self.referrals.find_one(
            {
                "campaign": campaign["_id"],
                "referrer": referrer["_id"],
                "referee.email": email,
                "status": {"$in": list(OPEN_STATUSES)},
            },
            sort=[("createdAt", DESCENDING)],
        )
        if referral is None:
            self._ensure_open(campaign)
            snapshot = AnonymousReferee.build(name=name, email=email, phone=phone)
            # the visitor arrived through the link, so it starts as clicked
            referral = await self._insert_referral(business, campaign, referrer, snapshot, "other", status="clicked")

        return await self.convert_referee(
            business["_id"],
            referral["_id"],
            {"name": name, "email": email, "phone": phone},
            {"conversion_type": "signup"},
        )

    # ── follow-ups ────────────────────────────────────────────────────────────
    async def send_follow_up(
        self,
        business_id,
        referral_id,
        message: Optional[str] = None,
        method: str = "email",
        subject: Optional[str] = None,
    ) -> Tuple[dict, dict]:
        """
        Returns (follow_up_entry, referral). The entry records whether the
        gateway accepted the message; a failed send is still recorded.
        """
        if method not in ("email", "sms", "ai"):
            raise ValidationError(f"Invalid follow-up method: {method}")
        business = await self._business(business_id)
        referral = await self._referral(business["_id"], referral_id)
        if referral["status"] in ("expired", "rejected"):
            raise InvalidTransition(f"Cannot follow up on a {referral['status']} referral")

        referee = referral.get("referee") or {}
        if method == "sms":
            address = referee.get("phone")
            if not address:
                raise ValidationError("Referee phone number is not available")
        else:
            address = referee.get("email")
            if not address:
                raise ValidationError("Referee email address is not available")

        if method == "ai" and not (message or "").strip():
            campaign = await self.campaigns.find_one({"_id": referral["campaign"]})
            referrer = await self.customers.find_one({"_id": referral["referrer"]})
            drafted = await openai_service.generate_follow_up_message(business, campaign, referral, referrer)
            subject = subject or drafted["subject"]
            message = drafted["body"]
        if not (message or "").strip():
            raise ValidationError("Please provide a message")

        business_name = business.get("businessName")
        subject = subject or f"A message from {business_name}"
        notifier = self.sms_notifier if method == "sms" else self.notifier
        if notifier is None:
            result = NotificationResult(success=False, error=f"No {method} notifier configured")
        else:
            result = await notify.send_guarded(notifier, address, subject, message, from_name=business_name)

        now = self.clock()
        entry = FollowUp(
            sent_at=now,
            method=method,
            message=message,
            status="sent" if result.success else "failed",
            error=result.error,
        ).to_mongo()
        updated = await self.referrals.find_one_and_update(
            {"_id": referral["_id"]},
            {"$push": {"followUps": entry}, "$set": {"updatedAt": now}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Follow-up (%s) for referral %s: %s", method, referral["_id"], entry["status"])
        return entry, updated

    # ── sweeps ────────────────────────────────────────────────────────────────
    async def expire_stale(self, business_id=None) -> int:
        query = {"status": {"$in": list(OPEN_STATUSES)}, "expiresAt": {"$lt": self.clock()}}
        if business_id is not None:
            query["business"] = as_oid(business_id, "business id")

        stale = await self.referrals.find(query, {"_id": 1}).to_list(length=None)
        expired = 0
        for doc in stale:
            try:
                await run_with_code_retry(
                    lambda rid=doc["_id"]: self._apply_transition(rid, "expired"),
                    MAX_CODE_ATTEMPTS,
                )
            except InvalidTransition:
                # moved on since the query ran
                continue
            expired += 1
        if expired:
            logger.info("Expired %d stale referrals", expired)
        return expired

    # ── read side ─────────────────────────────────────────────────────────────
    async def list_referrals(
        self,
        business_id,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        campaign_id=None,
    ) -> Tuple[List[dict], int]:
        query: Dict = {"business": as_oid(business_id, "business id")}
        if status:
            if status not in REFERRAL_STATUSES:
                raise ValidationError(f"Invalid referral status: {status}")
            query["status"] = status
        if campaign_id:
            query["campaign"] = as_oid(campaign_id, "campaign id")

        page = max(1, page)
        limit = max(1, min(limit, 100))
        total = await self.referrals.count_documents(query)
        cursor = self.referrals.find(query).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit)
        return await cursor.to_list(length=limit), total

    async def get_referral(self, business_id, referral_id) -> dict:
        return await self._referral(business_id, referral_id)

    async def list_customer_referrals(self, customer_id) -> List[dict]:
        cursor = self.referrals.find({"referrer": as_oid(customer_id, "customer id")}).sort("createdAt", DESCENDING)
        return await cursor.to_list(length=None)
