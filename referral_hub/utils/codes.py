# referral_hub/utils/codes.py
import os
import secrets
import string

from bson import ObjectId
from bson.errors import InvalidId

from .errors import ValidationError

REFERRAL_CODE_LEN = int(os.getenv("REFERRAL_CODE_LENGTH", "6"))
REWARD_CODE_LEN = int(os.getenv("REWARD_CODE_LENGTH", "8"))

# Max attempts when a generated code hits the unique index
MAX_CODE_ATTEMPTS = int(os.getenv("MAX_CODE_ATTEMPTS", "10"))

ALPHABET = string.ascii_uppercase + string.digits


def random_code(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def referral_code() -> str:
    return random_code(REFERRAL_CODE_LEN)


def reward_code(reward_type: str) -> str:
    prefix = (reward_type or "C")[:1].upper()
    return f"{prefix}{random_code(REWARD_CODE_LEN)}"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def as_oid(value, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} format.")
