"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator
import models  # noqa: F401  registers every table
from models.base import Base, Platform
from models.account import AdAccount


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a throwaway SQLite database per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'adsync_test.db'}",
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINTs behave
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test database"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


async def _create_account(session_factory, **overrides) -> AdAccount:
    values = {
        "platform": Platform.META,
        "external_account_id": "act_1001",
        "owner_id": "user_1",
        "name": "Storefront EU",
        "access_token": "test_token",
        "is_active": True,
    }
    values.update(overrides)

    async with session_factory() as session:
        account = AdAccount(**values)
        session.add(account)
        await session.commit()
    return account


@pytest_asyncio.fixture
async def meta_account(session_factory) -> AdAccount:
    """Active Meta ad account with credentials"""
    return await _create_account(session_factory)


@pytest_asyncio.fixture
async def google_account(session_factory) -> AdAccount:
    """Active Google Ads account with credentials"""
    return await _create_account(
        session_factory,
        platform=Platform.GOOGLE_ADS,
        external_account_id="123-456-7890",
        name="Search Brand",
        login_customer_id="999-000-1111",
    )


@pytest.fixture
def meta_campaigns():
    """Raw Graph API campaign records"""
    return [
        {
            "id": "23850001",
            "name": "Spring Sale",
            "status": "ACTIVE",
            "effective_status": "ACTIVE",
            "objective": "OUTCOME_SALES",
            "daily_budget": "5000",
        },
        {
            "id": "23850002",
            "name": "Retargeting",
            "status": "PAUSED",
            "effective_status": "PAUSED",
            "objective": "OUTCOME_TRAFFIC",
            "lifetime_budget": "120000",
        },
    ]


@pytest.fixture
def meta_insight():
    """Raw Graph API insight row for one campaign and day"""
    return {
        "campaign_id": "23850001",
        "campaign_name": "Spring Sale",
        "date_start": "2024-01-15",
        "date_stop": "2024-01-15",
        "impressions": "1000",
        "clicks": "50",
        "spend": "25.00",
        "reach": "800",
        "frequency": "1.25",
        "actions": [
            {"action_type": "link_click", "value": "45"},
            {"action_type": "purchase", "value": "5"},
        ],
        "action_values": [
            {"action_type": "purchase", "value": "250.00"},
        ],
    }


@pytest.fixture
def google_rows():
    """GAQL search rows for one campaign, segmented by date"""
    return [
        {
            "campaign": {"id": "555", "name": "Brand Search", "status": "ENABLED"},
            "metrics": {
                "impressions": "1000",
                "clicks": "40",
                "costMicros": "20000000",
                "conversions": 2.0,
                "conversionsValue": 90.0,
            },
            "segments": {"date": "2024-01-15"},
        },
        {
            "campaign": {"id": "555", "name": "Brand Search", "status": "ENABLED"},
            "metrics": {
                "impressions": "500",
                "clicks": "10",
                "costMicros": "5000000",
                "conversions": 1.0,
                "conversionsValue": 30.0,
            },
            "segments": {"date": "2024-01-15"},
        },
    ]
