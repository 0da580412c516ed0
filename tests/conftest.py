"""Shared fixtures: a throwaway sqlite database per test and an API client bound to it."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./itorero_test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "1000"
os.environ["GEOLOOKUP_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import src.itorero.models  # noqa: F401
from src.itorero.utils.database import Base, get_db


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "itorero.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    yield path
    Base.metadata.drop_all(sync_engine)
    sync_engine.dispose()


@pytest.fixture
def session_factory(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def client(session_factory):
    from src.itorero.app import app
    from src.itorero.utils.rate_limit import InMemoryRateLimitStore

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.state.session_factory = session_factory
    app.state.rate_limit_store = InMemoryRateLimitStore()
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()

