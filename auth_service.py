"""
GTSD — Auth Service
JWT issuance & validation. Users are identified by the numeric `sub` claim;
account management lives in another service.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
import logging

from config import settings

log = logging.getLogger(__name__)

ALGORITHM = "HS256"


def create_access_token(user_id: int, expires_minutes: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}")


def user_id_from_token(token: str) -> int:
    payload = decode_token(token)
    if payload.get("type") != "access":
        raise ValueError("Only access tokens can access resources.")
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise ValueError("Token subject is not a user id.")
