from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from passlib.context import CryptContext

from perrino.core.config import settings


password_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return password_context.verify(password, hashed_password)


def create_token(subject: str, expires_minutes: int, token_type: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload: dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_token_pair(user_id: int) -> tuple[str, str]:
    """Access + refresh tokens for a user id."""
    subject = str(user_id)
    access = create_token(subject, settings.access_token_expire_minutes, token_type="access")
    refresh = create_token(subject, settings.refresh_token_expire_minutes, token_type="refresh")
    return access, refresh


def decode_token(token: str, expected_type: str = "access") -> Optional[dict[str, Any]]:
    """Decode and check the token type; None when invalid, expired or of another type."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    return payload
