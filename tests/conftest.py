"""Pytest fixtures for equity engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from equity_engine.config import Settings
from equity_engine.database import create_schema, make_session_factory
from equity_engine.models import FinancialPeriod, Member, MemberEquitySnapshot

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"

FISCAL_YEAR = 2024


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database engine per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    factory = make_session_factory(engine)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    """Settings with the documented defaults, independent of the environment."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        incentive_spread=Decimal("5.0"),
        incentive_rate_cap=Decimal("10.0"),
        capital_tolerance=Decimal("10000"),
        percentage_tolerance=Decimal("0.1"),
        large_change_threshold=Decimal("10.0"),
    )


MemberFactory = Callable[..., Awaitable[Member]]


@pytest.fixture
def make_member(session: AsyncSession) -> MemberFactory:
    """Factory creating a member with a snapshot for a fiscal year."""
    counter = {"n": 0}

    async def _make(
        first_name: str,
        percentage: str | None,
        capital_balance: str = "0",
        fiscal_year: int = FISCAL_YEAR,
        status: str = "active",
        final_percentage: str | None = None,
        is_finalized: bool = False,
    ) -> Member:
        counter["n"] += 1
        member = Member(
            first_name=first_name,
            last_name=f"Member{counter['n']:02d}",
            email=f"{first_name.lower()}{counter['n']}@example.com",
            status=status,
        )
        session.add(member)
        await session.flush()
        session.add(
            MemberEquitySnapshot(
                member_id=member.member_id,
                fiscal_year=fiscal_year,
                estimated_percentage=None if percentage is None else Decimal(percentage),
                final_percentage=None if final_percentage is None else Decimal(final_percentage),
                capital_balance=Decimal(capital_balance),
                is_finalized=is_finalized,
            )
        )
        await session.flush()
        return member

    return _make


@pytest.fixture
async def two_members(make_member: MemberFactory) -> tuple[Member, Member]:
    """Member A (100,000 capital, 60%) and member B (50,000 capital, 40%)."""
    a = await make_member("Alice", "60", "100000")
    b = await make_member("Bob", "40", "50000")
    return a, b


@pytest.fixture
async def period_2024(session: AsyncSession) -> FinancialPeriod:
    """FY2024: 1,000,000 allocable at SOFR 3.0, balance sheet matching the allocation."""
    period = FinancialPeriod(
        fiscal_year=FISCAL_YEAR,
        net_income=Decimal("1000000"),
        accruals=Decimal("0"),
        adjustments=Decimal("0"),
        sofr_rate=Decimal("3.0"),
        sofr_source="Manual Entry",
        total_equity_balance_sheet=Decimal("1150000"),
        is_reconciled=False,
        is_allocated=False,
        version=1,
    )
    session.add(period)
    await session.flush()
    return period
