import os
from datetime import timedelta

from dotenv import load_dotenv
from jose import jwt

from .datetime_utils import now_utc

load_dotenv()

# Support either JWT_SECRET_KEY or JWT_SECRET (fallback)
SECRET_KEY = os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or ""
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "30"))


def create_jwt_token(data: dict, expires_delta: timedelta = timedelta(days=EXPIRE_DAYS)):
    to_encode = data.copy()
    expire = now_utc() + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_jwt_token(token: str) -> dict:
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
