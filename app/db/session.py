from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.logging import get_logger

logger = get_logger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True}


engine_internal = create_async_engine(settings.DATABASE_URL, future=True, echo=False, **_engine_options(settings.DATABASE_URL))
SessionAsync = async_sessionmaker(engine_internal, class_=AsyncSession, expire_on_commit=False)


async def create_tables() -> None:
    from app.db.base import Base

    logger.info("Creating database tables", backend=engine_internal.url.get_backend_name())
    async with engine_internal.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine_internal.dispose()
