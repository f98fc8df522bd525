from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ErrorCode, ForbiddenError, UnauthorizedError
from app.core.tokens import ExpiredTokenError, TokenError, TokenType, decode_token
from app.db.session import SessionAsync
from app.models.user import User, UserRole
from app.services.users import get_user_by_id

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/auth/token",
    description="Autenticação via email e senha",
    auto_error=False,
)


async def get_db():
    async with SessionAsync() as session:
        yield session


async def get_redis():
    redis = aioredis.from_url(settings.REDIS_URL)
    try:
        yield redis
    finally:
        await redis.aclose()


def extract_access_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    """Bearer header first, then the ``accessToken`` cookie."""
    return bearer or request.cookies.get(ACCESS_TOKEN_COOKIE) or None


async def get_current_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the caller from its access token and attach it to ``request.state.user``.

    Raises:
        UnauthorizedError: NO_TOKEN, INVALID_TOKEN, TOKEN_EXPIRED or USER_GONE
    """
    token = extract_access_token(request, bearer)
    if not token:
        raise UnauthorizedError(ErrorCode.NO_TOKEN)

    try:
        claims = decode_token(token, TokenType.ACCESS)
    except ExpiredTokenError:
        raise UnauthorizedError(ErrorCode.TOKEN_EXPIRED)
    except TokenError:
        raise UnauthorizedError(ErrorCode.INVALID_TOKEN)

    user = await get_user_by_id(db, claims.user_id)
    if user is None:
        raise UnauthorizedError(ErrorCode.USER_GONE)

    request.state.user = user
    return user


def require_roles(*roles: UserRole) -> Callable:
    """
    Factory to create a dependency that only lets the given roles through.

    Usage:
        @router.delete("/users")
        async def delete_all_users(user: User = Depends(require_roles(UserRole.ADMIN))):
            ...
    """
    allowed = {UserRole(role).value for role in roles}

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError()
        return current_user

    return role_checker
