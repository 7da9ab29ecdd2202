from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from passlib.context import CryptContext

from app.core.config import settings


ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

# bcrypt fijado a 4.0.1 en pyproject: passlib 1.7.4 falla con versiones nuevas
password_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


def hash_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return password_context.verify(password, hashed_password)


def create_token(subject: str, expires_minutes: int, token_type: str) -> str:
    issued_at = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_token_pair(user_id: int) -> tuple[str, str]:
    """(access, refresh) para el usuario."""
    subject = str(user_id)
    return (
        create_token(subject, settings.access_token_expire_minutes, ACCESS_TOKEN),
        create_token(subject, settings.refresh_token_expire_minutes, REFRESH_TOKEN),
    )


def decode_token(token: str, expected_type: Optional[str] = None) -> Optional[dict[str, Any]]:
    """Claims del token, o None si está vencido, mal firmado o no es del tipo esperado."""
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None
    if expected_type is not None and claims.get("type") != expected_type:
        return None
    if not str(claims.get("sub", "")).isdigit():
        return None
    return claims
