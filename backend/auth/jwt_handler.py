from datetime import datetime, timedelta, timezone

import jwt

from backend.core import config

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _encode(subject: str, token_type: str, expire_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "exp": now + timedelta(minutes=expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    return _encode(subject, ACCESS_TOKEN_TYPE, expires_minutes or config.JWT_EXPIRES_MINUTES)


def create_refresh_token(subject: str, expires_minutes: int | None = None) -> str:
    return _encode(subject, REFRESH_TOKEN_TYPE, expires_minutes or config.JWT_REFRESH_EXPIRES_MINUTES)


def create_token_pair(subject: str) -> dict:
    return {
        "access_token": create_access_token(subject),
        "refresh_token": create_refresh_token(subject),
    }


def decode_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
