# src/db/database.py
from core.config import settings
from typing import AsyncGenerator, Dict, Any
from sqlalchemy import Enum, event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from utils.logger import setup_logger

logger = setup_logger("DATABASE")


def _engine_options() -> Dict[str, Any]:
    """Pool options per backend; SQLite does not accept pool sizing"""
    if settings.SQLITE_MODE:
        return {"connect_args": {"check_same_thread": False}}

    options: Dict[str, Any] = {
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "jit": "off",
                "application_name": "carethread",
            },
        },
    }
    if settings.ENVIRONMENT == "testing":
        options["poolclass"] = NullPool
    else:
        options.update(pool_size=20, max_overflow=10, pool_timeout=30)
    return options


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on FK enforcement (and ON DELETE CASCADE) for every SQLite connection"""
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create SQLAlchemy engine with async support
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(),
)
enable_sqlite_foreign_keys(engine)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_tables(target_engine: AsyncEngine = engine) -> None:
    """Create all tables known to the metadata"""
    import models  # noqa: F401  registers every mapper on Base.metadata

    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def check_db_connection() -> bool:
    """Check database connection health"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def disconnect_db() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")


def str_enum(enum_cls, name: str) -> Enum:
    """Enum column type that stores member values, so "patient" and Role.PATIENT bind alike"""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )
