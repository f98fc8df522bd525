from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    return await db.get(User, user_id)


async def count_registered_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(User).where(User.password.is_not(None)))
    return result.scalar_one()


async def registration_open(db: AsyncSession) -> bool:
    """True while no identity has completed registration (single-admin bootstrap)."""
    return await count_registered_users(db) == 0
