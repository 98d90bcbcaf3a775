from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Union
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from marketplace.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = settings.JWT_ALGORITHM
_RESERVED_EXTRA_CLAIMS = {"sub", "exp", "type", "jti", "iat", "role"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _apply_extra_claims(payload: dict[str, Any], extra: dict[str, Any] | None) -> None:
    if not extra:
        return
    for key, value in extra.items():
        if key in _RESERVED_EXTRA_CLAIMS:
            continue
        payload[key] = value


def _ensure_header_algorithm(token: str) -> None:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise JWTError("Invalid token header") from exc
    if header.get("alg") != ALGORITHM:
        raise JWTError("Token signed with unexpected algorithm")


def _build_token(
    subject: Union[str, int],
    role: str,
    token_type: str,
    expires: timedelta,
    secret: str,
    extra: dict[str, Any] | None,
) -> str:
    now = _now()
    payload: dict[str, Any] = {
        "sub": str(subject),
        "role": role,
        "type": token_type,
        "exp": now + expires,
        "iat": int(now.timestamp()),
        "jti": uuid4().hex,
    }
    _apply_extra_claims(payload, extra)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def create_access_token(
    subject: Union[str, int],
    role: str,
    expires_minutes: int | None = None,
    extra: dict[str, Any] | None = None,
) -> str:
    exp_min = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    return _build_token(subject, role, "access", timedelta(minutes=exp_min), settings.SECRET_KEY, extra)


def create_refresh_token(
    subject: Union[str, int],
    role: str,
    expires_days: int | None = None,
    extra: dict[str, Any] | None = None,
) -> str:
    exp_days = expires_days or settings.REFRESH_TOKEN_EXPIRE_DAYS
    return _build_token(
        subject, role, "refresh", timedelta(days=exp_days), settings.refresh_secret_fallback, extra
    )


def _decode(token: str, secret: str, expected_type: str) -> dict[str, Any]:
    _ensure_header_algorithm(token)
    data = jwt.decode(token, secret, algorithms=[ALGORITHM])
    if data.get("type") != expected_type:
        raise JWTError("Invalid token type")
    return data


def decode_access_token(token: str) -> dict[str, Any]:
    return _decode(token, settings.SECRET_KEY, "access")


def decode_refresh_token(token: str) -> dict[str, Any]:
    return _decode(token, settings.refresh_secret_fallback, "refresh")
