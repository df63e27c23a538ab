import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from booking_engine.core.config import settings

logger = structlog.get_logger(__name__)


def build_engine(url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Async engine for ``url``; pool tuning only applies to server databases."""
    options = {"echo": False}
    if not url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_recycle=300)
    return create_async_engine(url, **options)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()


async def init_db():
    """Check that the database answers before serving requests."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("Database connection initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", exc_info=e)
        raise


async def create_tables(target: AsyncEngine = engine) -> list[str]:
    """Create every booking engine table that does not exist yet."""
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    tables = sorted(Base.metadata.tables)
    logger.info("Database tables created", tables=tables)
    return tables


async def drop_tables(target: AsyncEngine = engine) -> None:
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Database tables dropped")


async def get_db() -> AsyncSession:
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error("Database session error", exc_info=e)
            raise
        finally:
            await session.close()
