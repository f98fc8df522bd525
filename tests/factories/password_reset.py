"""
PasswordReset factory for test data generation.
"""

from datetime import datetime, timedelta, timezone
from typing import Tuple

import factory
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import generate_otp, hash_otp
from app.models.password_reset import PasswordReset


class PasswordResetFactory(factory.Factory):
    """
    Factory for PasswordReset model.

    Requires ``user_id``. Defaults to an unused record expiring in 10 minutes.
    """

    class Meta:
        model = PasswordReset

    otp_hash = factory.LazyFunction(lambda: hash_otp(generate_otp()))
    expires_at = factory.LazyFunction(lambda: datetime.now(timezone.utc) + timedelta(minutes=10))
    used = False

    @classmethod
    async def create_async(cls, db_session: AsyncSession, **kwargs) -> PasswordReset:
        instance = cls.build(**kwargs)
        db_session.add(instance)
        await db_session.flush()
        return instance

    @classmethod
    async def create_with_otp_async(
        cls,
        db_session: AsyncSession,
        otp: str = "123456",
        **kwargs
    ) -> Tuple[PasswordReset, str]:
        """Create a record whose plain code is known to the test."""
        record = await cls.create_async(db_session, otp_hash=hash_otp(otp), **kwargs)
        return record, otp
