"""Pytest configuration and fixtures."""

import asyncio
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_ENABLED"] = "false"
os.environ["PASSWORD_BCRYPT_ROUNDS"] = "4"
os.environ["CONTRACT_EXPIRY_SWEEP_ENABLED"] = "false"

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from app.core.password import hash_password
from app.infrastructure.realtime import RealtimeBroker
from app.infrastructure.redis import RedisClient
from app.persistence.database import Base, get_db
from app.persistence.models import *  # noqa: F401, F403
from app.persistence.models.user import ROLE_ADVISOR, ROLE_CUSTOMER
from app.persistence.repositories.plan_repository import PlanRepository
from app.persistence.repositories.user_repository import UserRepository

TEST_PASSWORD = "secret-pass"


@pytest.fixture
async def engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_password():
    """Plaintext password of users built by make_user."""
    return TEST_PASSWORD


@pytest.fixture
def broker():
    """Realtime broker using in-process fan-out."""
    return RealtimeBroker(RedisClient())


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    async def _make_user(role: str = ROLE_CUSTOMER, **overrides):
        counter["n"] += 1
        data = {
            "email": f"{role}{counter['n']}@example.com",
            "hashed_password": hash_password(TEST_PASSWORD),
            "display_name": f"{role.title()} {counter['n']}",
            "role": role,
        }
        data.update(overrides)
        return await UserRepository(db_session).create(**data)

    return _make_user


@pytest.fixture
async def customer(make_user):
    return await make_user(ROLE_CUSTOMER)


@pytest.fixture
async def advisor(make_user):
    return await make_user(ROLE_ADVISOR)


@pytest.fixture
def make_plan(db_session):
    async def _make_plan(advisor, **overrides):
        data = {
            "advisor_id": advisor.id,
            "name": "Basic 5GB",
            "description": "Everyday plan",
            "price": 19.99,
            "data_allowance": "5GB",
            "minutes_allowance": "300",
            "sms_allowance": "UNLIMITED",
            "speed_4g": "50 Mbps",
            "segment": "basic",
        }
        data.update(overrides)
        return await PlanRepository(db_session).create(**data)

    return _make_plan


@pytest.fixture
async def plan(make_plan, advisor):
    return await make_plan(advisor)


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture
def client(tmp_path):
    """Create a test FastAPI client backed by a file database."""
    from fastapi.testclient import TestClient

    from app.domain.services.chat_channel_manager import ChatChannelManager
    from app.main import app

    # The app runs on the TestClient's own event loop, so connections are never pooled
    api_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool
    )
    asyncio.run(_create_schema(api_engine))
    factory = async_sessionmaker(api_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        app.state.session_factory = factory
        app.state.channel_manager = ChatChannelManager(app.state.broker, factory)
        yield test_client

    app.dependency_overrides.clear()
