# referral_hub/services/openai_service.py
import asyncio
import json
import logging
import os
from typing import Dict, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI, OpenAIError

load_dotenv()

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
AI_MODEL = os.getenv("AI_MODEL", "gpt-4o-mini")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "20"))

client = AsyncOpenAI(api_key=OPENAI_API_KEY, timeout=AI_TIMEOUT_SECONDS) if OPENAI_API_KEY else None

FOLLOW_UP_TYPES = ("initial", "reminder", "final")


# -------- static copy used whenever the model is unavailable --------

def fallback_sharing_suggestions(referral_link: Optional[str], business_name: Optional[str] = None) -> Dict:
    link = referral_link or ""
    who = business_name or "this business"
    return {
        "sms": f"Hey! I thought you might like {who}. Use my referral link to get a special offer. We both win! {link}".strip(),
        "email": {
            "subject": f"Special offer from {who}, just for you",
            "body": (
                f"Hi there,\n\nI've been enjoying {who} and thought you might like it too. "
                "If you sign up using my referral link, you'll get a special offer, and I'll earn a reward too.\n\n"
                f"Just click this link to register: {link}\n\nCheers"
            ),
        },
        "facebook": (
            f"I've been loving {who}! Friends who sign up with my referral link get a special offer. "
            f"Click here and we both get rewards: {link}"
        ),
        "twitter": f"Loving {who}! Sign up with my referral link and we both get rewards. #referral {link}".strip(),
        "whatsapp": (
            f"Hey! I've been using {who} and thought you might like it too. "
            f"If you register with my link you get an offer and I earn a reward: {link}"
        ),
    }


def fallback_follow_up(business_name: Optional[str] = None, referee_name: Optional[str] = None) -> Dict:
    hello = f"Hi {referee_name}," if referee_name else "Hi there,"
    who = business_name or "us"
    return {
        "subject": "A friendly reminder about your referral invitation",
        "body": (
            f"{hello}\n\nI just wanted to follow up on the referral invitation you received for {who}. "
            "The offer is still available, and I thought you might be interested.\n\n"
            "If you have any questions, feel free to ask!\n\nBest regards"
        ),
    }


# -------- model calls --------

async def _complete_json(system: str, prompt: str) -> Optional[Dict]:
    """
    One JSON-mode chat completion. Returns None on any failure so callers can
    fall back to static copy.
    """
    if client is None:
        logger.warning("OPENAI_API_KEY is not set, using fallback copy")
        return None
    try:
        completion = await asyncio.wait_for(
            client.chat.completions.create(
                model=AI_MODEL,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            ),
            AI_TIMEOUT_SECONDS,
        )
        content = completion.choices[0].message.content or ""
        data = json.loads(content)
    except (OpenAIError, asyncio.TimeoutError, json.JSONDecodeError, IndexError) as e:
        logger.warning("AI completion failed, using fallback copy: %s", e)
        return None
    return data if isinstance(data, dict) else None


async def generate_sharing_suggestions(
    business: dict,
    campaign: dict,
    customer: dict,
    referral_link: Optional[str],
) -> Dict:
    business_name = business.get("businessName")
    reward = (campaign.get("referrerReward") or {}).get("description")
    prompt = f"""
Generate personalized sharing suggestions for a referral campaign with the following details:

Business Name: {business_name}
Business Industry: {business.get("industry") or "Not specified"}
Campaign Name: {campaign.get("name")}
Campaign Description: {campaign.get("description") or "Not specified"}
Campaign Reward: {reward or "Not specified"}
Customer Name: {customer.get("name")}
Referral Link: {referral_link}

Generate 5 different sharing suggestions:
1. A short SMS message (max 160 characters)
2. An email subject line and body
3. A Facebook post
4. A Twitter/X post (max 280 characters)
5. A WhatsApp message

Each message should be personalized, mention the business name, briefly explain the referral program,
and include the referral link.

Format the response as a JSON object with keys: sms, email (with subject and body), facebook, twitter, whatsapp.
"""
    data = await _complete_json("You are a marketing expert specializing in referral programs.", prompt)
    fallback = fallback_sharing_suggestions(referral_link, business_name)
    if not data:
        return fallback

    # keep the response shape stable even if the model drops a key
    out = dict(fallback)
    for key in ("sms", "facebook", "twitter", "whatsapp"):
        if isinstance(data.get(key), str) and data[key].strip():
            out[key] = data[key]
    email = data.get("email")
    if isinstance(email, dict) and email.get("subject") and email.get("body"):
        out["email"] = {"subject": str(email["subject"]), "body": str(email["body"])}
    return out


async def generate_follow_up_message(
    business: dict,
    campaign: Optional[dict],
    referral: dict,
    referrer: Optional[dict] = None,
    follow_up_type: str = "reminder",
) -> Dict:
    if follow_up_type not in FOLLOW_UP_TYPES:
        follow_up_type = "reminder"
    referee = referral.get("referee") or {}
    campaign = campaign or {}
    prompt = f"""
Generate a personalized follow-up {follow_up_type} message for a referral with the following details:

Business Name: {business.get("businessName")}
Business Industry: {business.get("industry") or "Not specified"}
Campaign Name: {campaign.get("name") or "Not specified"}
Campaign Description: {campaign.get("description") or "Not specified"}
Referral Status: {referral.get("status")}
Customer Name: {referee.get("name") or "Not specified"}
Referrer Name: {(referrer or {}).get("name") or "Not specified"}

The follow-up type is: {follow_up_type} (initial, reminder, or final)

Generate an email subject line and body that is personalized, mentions the business name,
explains the referral program status, and includes a clear call to action.

Format the response as a JSON object with keys: subject, body.
"""
    data = await _complete_json(
        "You are a customer relationship expert specializing in referral programs.", prompt
    )
    if data and data.get("subject") and data.get("body"):
        return {"subject": str(data["subject"]), "body": str(data["body"])}
    return fallback_follow_up(business.get("businessName"), referee.get("name"))
