# app/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from app.core.config import settings


def create_access_token(
    data: dict[str, Any],
    expires_minutes: int = 120,
    secret_key: str | None = None,
) -> str:
    # helper de tests: la emisión real de JWT vive en el servicio de login
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key or settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, secret_key: str | None = None) -> dict[str, Any]:
    return jwt.decode(token, secret_key or settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
