"""
Token issuer.

Mints and verifies the three JWT classes used by the API:

- access: short-lived, authorizes individual API calls
- refresh: long-lived, only exchanged for a new access/refresh pair
- reset: minutes-long, proves a password-reset OTP was verified

Each class is signed with its own secret and carries a mandatory ``type``
claim, so a token of one class never verifies as another. Tokens are
stateless; nothing here touches the database.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from app.core.config import settings


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET = "reset"


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidTokenError(TokenError):
    """Bad signature, malformed token or wrong token class."""


class ExpiredTokenError(TokenError):
    """Signature is valid but ``exp`` is in the past."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime
    jti: str
    reset_id: Optional[int] = None


def _secret_for(token_type: TokenType) -> str:
    return {
        TokenType.ACCESS: settings.ACCESS_TOKEN_SECRET,
        TokenType.REFRESH: settings.REFRESH_TOKEN_SECRET,
        TokenType.RESET: settings.RESET_TOKEN_SECRET,
    }[token_type]


def _default_lifetime(token_type: TokenType) -> timedelta:
    return {
        TokenType.ACCESS: timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        TokenType.REFRESH: timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        TokenType.RESET: timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES),
    }[token_type]


def _encode(
    token_type: TokenType,
    user_id: int,
    expires_delta: Optional[timedelta] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else _default_lifetime(token_type))
    to_encode: Dict[str, Any] = {
        "sub": str(user_id),
        "type": token_type.value,
        "iat": now,
        "exp": expire,
        "jti": uuid.uuid4().hex,
    }
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, _secret_for(token_type), algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(TokenType.ACCESS, user_id, expires_delta)


def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(TokenType.REFRESH, user_id, expires_delta)


def create_reset_token(user_id: int, reset_id: int, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(TokenType.RESET, user_id, expires_delta, extra={"rid": reset_id})


def decode_token(token: str, token_type: TokenType) -> TokenClaims:
    """
    Verify ``token`` as a token of class ``token_type``.

    The signature is checked before expiry, so a token signed with another
    class's secret is reported as invalid even when it is also expired.

    Raises:
        ExpiredTokenError: signature is valid but the token has expired
        InvalidTokenError: any other failure
    """
    try:
        payload = jwt.decode(token, _secret_for(token_type), algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise ExpiredTokenError("Token expired") from exc
    except JWTError as exc:
        raise InvalidTokenError("Invalid token") from exc

    if payload.get("type") != token_type.value:
        raise InvalidTokenError("Wrong token type")

    try:
        user_id = int(payload["sub"])
        issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        jti = str(payload["jti"])
        reset_id = int(payload["rid"]) if token_type is TokenType.RESET else None
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidTokenError("Malformed token claims") from exc

    return TokenClaims(
        user_id=user_id,
        token_type=token_type,
        issued_at=issued_at,
        expires_at=expires_at,
        jti=jti,
        reset_id=reset_id,
    )
