import logging
import re
import time
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import async_sessionmaker
from schoollink.config import settings
from schoollink.exceptions import translate_integrity_error

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """
    Point plain PostgreSQL URLs at the asyncpg driver.

    Hosted databases hand out ``postgresql://...?sslmode=require`` URLs which
    asyncpg does not understand; SSL is configured through DATABASE_SSL instead.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return re.sub(r"[?&]sslmode=\w+", "", url)


db_url = normalize_database_url(settings.DATABASE_URL)

# Create async SQLAlchemy engine
engine = create_async_engine(
    db_url,
    echo=settings.DB_ECHO,
    future=True,
    connect_args={"ssl": True} if settings.DATABASE_SSL else {},
)

# Create base class for models
Base = declarative_base()

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)

# Dependency to get DB session
async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(db: AsyncSession, name: str = "transaction"):
    """
    Run a block of writes as one atomic unit.

    Commits when the block finishes, rolls back on any error. Integrity
    violations surface as application errors. A transaction held longer than
    TRANSACTION_WARN_SECONDS is logged but never interrupted.
    """
    started = time.monotonic()
    try:
        yield db
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.warning(f"{name} rolled back: {exc.orig}")
        raise translate_integrity_error(exc) from exc
    except Exception:
        await db.rollback()
        raise
    finally:
        elapsed = time.monotonic() - started
        if elapsed > settings.TRANSACTION_WARN_SECONDS:
            logger.warning(f"{name} held a connection for {elapsed:.1f}s")
