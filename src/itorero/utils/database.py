# src/itorero/utils/database.py
import os
import logging

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from dotenv import load_dotenv

# Configure logging for better error tracing
logger = logging.getLogger(__name__)
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

# Load environment variables from .env file
load_dotenv()

# Database credentials and configuration loaded from environment variables
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")
DB_DRIVER = os.getenv("DB_DRIVER", "postgresql+asyncpg")

DB_ECHO = os.getenv("DB_ECHO", "False").lower() in ("true", "1", "yes")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
DB_TIMEOUT = int(os.getenv("DB_TIMEOUT", "30"))

# If DATABASE_URL is not directly defined in .env, construct it using individual components
DATABASE_URL = (
    os.getenv("DATABASE_URL")
    or f"{DB_DRIVER}://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)


def _engine_kwargs(url: str) -> dict:
    # sqlite (tests, local runs) has no server-side pool to size
    if url.startswith("sqlite"):
        return {"echo": DB_ECHO, "connect_args": {"timeout": DB_TIMEOUT}}
    return {
        "echo": DB_ECHO,  # Logs all SQL queries if True
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "connect_args": {"timeout": DB_TIMEOUT},
        "pool_pre_ping": True,  # Ensures the connections are valid before using them
    }


# Create the asynchronous engine with connection pooling and timeout handling
try:
    engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
    logger.info("Database engine created for driver %s", DATABASE_URL.split("://", 1)[0])
except SQLAlchemyError as e:
    logger.error(f"Error creating database engine: {e}")
    raise Exception(f"Database connection failed: {e}")

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,  # Don't expire objects after commit
)

# Base class for SQLAlchemy ORM models
Base = declarative_base()


# Dependency to retrieve a database session in FastAPI
# Ensures the session is properly closed after use
async def get_db():
    try:
        async with AsyncSessionLocal() as session:
            yield session
    except IntegrityError:
        # surfaced as 409 by the exception handler
        raise
    except SQLAlchemyError as e:
        logger.error(f"Error: while interacting with the database: {e}")
        raise HTTPException(status_code=500, detail=f"Database operation failed: {e}")


async def init_models() -> None:
    """Create all tables known to ``Base`` (local runs and tests; production uses migrations)."""
    # imported for the side effect of registering every table on Base.metadata
    import src.itorero.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
