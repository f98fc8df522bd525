"""
    Authentication and Credential Recovery Endpoints
    API endpoints for the single-admin registration gate, session tokens and
    OTP-based password reset. Tokens are JWTs delivered both in the JSON body
    and as http-only cookies; protected routes accept either (header wins).
    Endpoints:
    - /registration-status: Whether the first (and only) account can still register.
    - /register: Registers the admin account while registration is open.
    - /login: Authenticates a user and issues an access + refresh token pair.
    - /token: OAuth2 password flow for the OpenAPI "Authorize" button.
    - /refresh-token: Rotates the refresh token and issues a new pair.
    - /logout: Clears the session cookies.
    - /me: Returns the authenticated identity.
    - /forgot-password: Emails a 6-digit OTP (generic response for unknown emails).
    - /verify-otp: Exchanges a valid OTP for a 5-minute reset token.
    - /reset-password: Sets a new password using the reset token (single use).
    Security Features:
    - Rate limiting on login and on both OTP steps.
    - Uniform responses so OTP endpoints never reveal whether an email exists.
    - Separate signing secrets per token class.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_current_user,
    get_db,
    get_redis,
)
from app.core.config import settings
from app.core.errors import (
    ConflictError,
    ErrorCode,
    RegistrationClosedError,
    TooManyRequestsError,
    UnauthorizedError,
)
from app.core.security import get_password_hash, verify_password
from app.core.tokens import TokenError, TokenType, create_access_token, create_refresh_token, decode_token
from app.helpers.getters import isProductionMode
from app.helpers.rate_limit import allow
from app.logging import get_logger
from app.models.user import User, UserRole
from app.schemas.auth import (
    AuthSession,
    ForgotPasswordIn,
    Login,
    RefreshTokenIn,
    RegisterIn,
    ResetPasswordIn,
    Token,
    VerifyOtpIn,
    VerifyOtpOut,
)
from app.schemas.common import SuccessResponse
from app.schemas.user import UserOut
from app.services import password_reset
from app.services.email import EmailSender, get_email_sender
from app.services.users import count_registered_users, get_user_by_email, get_user_by_id, registration_open

router = APIRouter()
logger = get_logger("auth")

LOGIN_WINDOW_SEC = 900


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _enforce_rate_limit(redis: Redis, scope: str, email: str, request: Request, max_attempts: int):
    if not await allow(redis, scope, email, _client_ip(request), max_attempts=max_attempts, window_sec=LOGIN_WINDOW_SEC):
        logger.warning("Rate limit exceeded", scope=scope)
        raise TooManyRequestsError()


def set_token_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    secure = isProductionMode()
    samesite = "strict" if secure else "lax"
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=secure,
        samesite=samesite,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=secure,
        samesite=samesite,
    )


def clear_token_cookies(response: Response) -> None:
    secure = isProductionMode()
    samesite = "strict" if secure else "lax"
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(key, httponly=True, secure=secure, samesite=samesite)


def _issue_session(response: Response, user: User) -> dict:
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    set_token_cookies(response, access_token, refresh_token)
    session = AuthSession(user=UserOut.model_validate(user), access_token=access_token, refresh_token=refresh_token)
    return session.model_dump(by_alias=True, mode="json")


@router.get("/registration-status", response_model=SuccessResponse, response_model_exclude_none=True)
async def registration_status(db: AsyncSession = Depends(get_db)):
    return SuccessResponse(data={"registrationOpen": await registration_open(db)})


@router.post(
    "/register",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def register(payload: RegisterIn, response: Response, db: AsyncSession = Depends(get_db)):
    # Contagem e insert na mesma transação; registration_claim é UNIQUE
    if await count_registered_users(db) > 0:
        raise RegistrationClosedError()

    if await get_user_by_email(db, payload.email):
        raise ConflictError()

    hashed_password = get_password_hash(payload.password)
    new_user = User(
        name=payload.name,
        email=payload.email,
        password=hashed_password,
        role=UserRole.ADMIN.value,
        registration_claim=True,
    )
    db.add(new_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if await get_user_by_email(db, payload.email):
            raise ConflictError()
        raise RegistrationClosedError()

    logger.great("Admin account registered", user_id=new_user.id)
    return SuccessResponse(
        message="Registration successful. You are the admin.",
        data=_issue_session(response, new_user),
    )


@router.post("/login", response_model=SuccessResponse, response_model_exclude_none=True)
async def login(
    login_data: Login,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    await _enforce_rate_limit(redis, "login", login_data.email, request, max_attempts=10)

    user = await get_user_by_email(db, login_data.email)
    if not user or not user.is_registered or not verify_password(login_data.password, user.password):
        raise UnauthorizedError(ErrorCode.INVALID_CREDENTIALS)

    logger.info("User logged in", user_id=user.id)
    return SuccessResponse(message="Login successful.", data=_issue_session(response, user))


@router.post("/token", response_model=Token)
async def oauth2_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """
    Endpoint OAuth2 padrão para autenticação.

    O Swagger UI usa este endpoint automaticamente quando você clica em "Authorize".
    O campo 'username' do OAuth2 recebe o email do usuário.
    """
    user = await get_user_by_email(db, form_data.username)
    if not user or not user.is_registered or not verify_password(form_data.password, user.password):
        raise UnauthorizedError(ErrorCode.INVALID_CREDENTIALS)

    return Token(access_token=create_access_token(user.id))


@router.post("/refresh-token", response_model=SuccessResponse, response_model_exclude_none=True)
async def refresh_token(
    request: Request,
    response: Response,
    payload: Optional[RefreshTokenIn] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    token = request.cookies.get(REFRESH_TOKEN_COOKIE) or (payload.refresh_token if payload else None)
    if not token:
        raise UnauthorizedError(ErrorCode.NO_TOKEN, "No refresh token.")

    try:
        claims = decode_token(token, TokenType.REFRESH)
    except TokenError:
        raise UnauthorizedError(ErrorCode.INVALID_REFRESH_TOKEN)

    user = await get_user_by_id(db, claims.user_id)
    if user is None:
        raise UnauthorizedError(ErrorCode.USER_GONE, "User not found.")

    return SuccessResponse(data=_issue_session(response, user))


@router.post("/logout", response_model=SuccessResponse, response_model_exclude_none=True)
async def logout(response: Response):
    clear_token_cookies(response)
    return SuccessResponse(message="Logged out successfully.")


@router.get("/me", response_model=SuccessResponse, response_model_exclude_none=True)
async def read_me(current_user: User = Depends(get_current_user)):
    return SuccessResponse(data={"user": UserOut.model_validate(current_user).model_dump(by_alias=True, mode="json")})


@router.post("/forgot-password", response_model=SuccessResponse, response_model_exclude_none=True)
async def forgot_password(
    payload: ForgotPasswordIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    email_sender: EmailSender = Depends(get_email_sender),
):
    await _enforce_rate_limit(redis, "fp:start", payload.email, request, max_attempts=5)
    await password_reset.request_password_reset(db, payload.email, email_sender)
    return SuccessResponse(message=password_reset.GENERIC_RESET_MESSAGE)


@router.post("/verify-otp", response_model=SuccessResponse, response_model_exclude_none=True)
async def verify_otp(
    payload: VerifyOtpIn,
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    await _enforce_rate_limit(redis, "fp:verify", payload.email, request, max_attempts=10)
    reset_token = await password_reset.verify_reset_otp(db, payload.email, payload.otp)
    return SuccessResponse(
        message="OTP verified successfully.",
        data=VerifyOtpOut(reset_token=reset_token).model_dump(by_alias=True),
    )


@router.post("/reset-password", response_model=SuccessResponse, response_model_exclude_none=True)
async def reset_password(payload: ResetPasswordIn, db: AsyncSession = Depends(get_db)):
    await password_reset.reset_password(db, payload.reset_token, payload.password)
    return SuccessResponse(message="Password has been reset successfully. Please log in.")
