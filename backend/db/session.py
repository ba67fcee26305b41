from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy import event
from core.config import settings
import logging

Base = declarative_base()
logger = logging.getLogger("passcode_auth")


def _to_async_database_url(url: str) -> str:
    if not url:
        return url
    # Prefer aiomysql for MySQL and aiosqlite for SQLite
    if url.startswith("mysql+pymysql://"):
        return url.replace("mysql+pymysql://", "mysql+aiomysql://", 1)
    if url.startswith("mysql://"):
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


ASYNC_DATABASE_URL = _to_async_database_url(settings.DATABASE_URL)


def build_engine(url: str):
    """Create the async engine; pool tuning only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, future=True, echo=False)
    # pool_recycle stays below the server wait_timeout; modest pool to avoid stampedes
    return create_async_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=settings.DB_PRE_PING,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        connect_args={"connect_timeout": settings.DB_CONNECT_TIMEOUT},
    )


engine = build_engine(ASYNC_DATABASE_URL)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session():
    async with SessionLocal() as db:
        try:
            logger.debug("DB session dependency: opened")
            yield db
        except Exception:
            # ensure we always rollback when something goes wrong
            await db.rollback()
            raise
        finally:
            logger.debug("DB session dependency: closed")


@event.listens_for(engine.sync_engine, "connect")
def _on_connect(dbapi_connection, connection_record):
    logger.debug("DB connect: id=%s", id(connection_record))


@event.listens_for(engine.sync_engine, "close")
def _on_close(dbapi_connection, connection_record):
    logger.debug("DB close: id=%s", id(connection_record))
