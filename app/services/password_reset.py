"""
Password reset via emailed one-time passcode.

Lifecycle of a reset attempt (one ``PasswordReset`` row per OTP issued):

    request -> REQUESTED -> verify -> VERIFIED -> reset -> CONSUMED

- request_password_reset: supersedes every unused record of the user, stores
  a new bcrypt-hashed OTP valid for ``OTP_EXPIRE_MINUTES`` and emails the
  code. Unknown or unregistered emails get the same silent success.
- verify_reset_otp: checks the code against the newest usable record and
  returns a short-lived reset token bound to ``(user_id, reset_id)``. The
  record stays unused, so verifying again works until the reset happens.
- reset_password: sets the new password hash and marks the record used in a
  single transaction. A second attempt with the same token fails.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    NotFoundError,
    OtpExpiredOrInvalidError,
    OtpInvalidError,
    ResetLinkAlreadyUsedError,
    ResetLinkExpiredError,
)
from app.core.security import generate_otp, get_password_hash, hash_otp, verify_otp
from app.core.tokens import TokenError, TokenType, create_reset_token, decode_token
from app.logging import get_logger
from app.models.password_reset import PasswordReset
from app.models.user import User
from app.services.email import EmailSender
from app.services.users import get_user_by_email, get_user_by_id

logger = get_logger("auth.password_reset")

GENERIC_RESET_MESSAGE = "If an account with that email exists, an OTP has been sent."


async def request_password_reset(db: AsyncSession, email: str, email_sender: EmailSender) -> None:
    user = await get_user_by_email(db, email)

    if user is None or not user.is_registered:
        # Mesmo custo de hash para não revelar se o email existe
        hash_otp(generate_otp())
        logger.info("Password reset requested for unknown or unregistered email")
        return

    otp = generate_otp()
    otp_hash = hash_otp(otp)

    try:
        # Serializa pedidos concorrentes do mesmo usuário
        await db.execute(select(User.id).where(User.id == user.id).with_for_update())
        await db.execute(
            update(PasswordReset)
            .where(PasswordReset.user_id == user.id, PasswordReset.used.is_(False))
            .values(used=True)
        )
        record = PasswordReset(
            user_id=user.id,
            otp_hash=otp_hash,
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
            used=False,
        )
        db.add(record)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise

    logger.info("Password reset OTP issued", user_id=user.id, reset_id=record.id)

    # Falha no envio sobe para o chamador; o registro fica e um novo pedido o substitui
    await email_sender.send_otp(user.email, otp, user.name)


async def find_active_reset(db: AsyncSession, user_id: int) -> Optional[PasswordReset]:
    """Newest record that is still unused and not expired."""
    result = await db.execute(
        select(PasswordReset)
        .where(
            PasswordReset.user_id == user_id,
            PasswordReset.used.is_(False),
            PasswordReset.expires_at > datetime.now(timezone.utc),
        )
        .order_by(PasswordReset.created_at.desc(), PasswordReset.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def verify_reset_otp(db: AsyncSession, email: str, otp: str) -> str:
    user = await get_user_by_email(db, email)
    if user is None:
        raise OtpInvalidError()

    record = await find_active_reset(db, user.id)
    if record is None:
        raise OtpExpiredOrInvalidError()

    if not verify_otp(otp, record.otp_hash):
        logger.warning("Invalid OTP submitted", user_id=user.id, reset_id=record.id)
        raise OtpInvalidError()

    logger.info("OTP verified", user_id=user.id, reset_id=record.id)
    return create_reset_token(user.id, record.id)


async def reset_password(db: AsyncSession, reset_token: str, new_password: str) -> None:
    try:
        claims = decode_token(reset_token, TokenType.RESET)
    except TokenError:
        raise ResetLinkExpiredError()

    password_hash = get_password_hash(new_password)

    result = await db.execute(
        select(PasswordReset).where(PasswordReset.id == claims.reset_id).with_for_update()
    )
    record = result.scalar_one_or_none()
    if record is None or record.used or record.user_id != claims.user_id:
        raise ResetLinkAlreadyUsedError()

    user = await get_user_by_id(db, claims.user_id)
    if user is None:
        raise NotFoundError("User not found.")

    # Senha nova e registro consumido: commit único, ou nada
    try:
        user.password = password_hash
        record.used = True
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise

    logger.great("Password reset completed", user_id=user.id, reset_id=record.id)
