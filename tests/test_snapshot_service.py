"""Tests for snapshot creation and year roll-forward."""

from decimal import Decimal
from uuid import uuid4

import pytest

from equity_engine.errors import ImmutableStateError, NotFoundError, ValidationError
from equity_engine.models import Member, MemberAllocation, utcnow
from equity_engine.services import SnapshotService


@pytest.fixture
def service(session):
    return SnapshotService(session)


async def test_create_initial(session, service, period_2024):
    member = Member(first_name="Dana", last_name="New", email="dana@example.com")
    session.add(member)
    await session.flush()

    snapshot = await service.create_initial(member.member_id, 2024, "2.5", "1000")

    assert snapshot.estimated_percentage == Decimal("2.5")
    assert snapshot.final_percentage is None
    assert snapshot.capital_balance == Decimal("1000")
    assert snapshot.is_finalized is False


async def test_create_initial_validation(session, service, make_member):
    member = await make_member("Alice", "60")

    with pytest.raises(ValidationError):
        await service.create_initial(member.member_id, 2024, "10")
    with pytest.raises(ValidationError):
        await service.create_initial(member.member_id, 2025, "101")
    with pytest.raises(ValidationError):
        await service.create_initial(member.member_id, 2025, "10", "-1")
    with pytest.raises(NotFoundError):
        await service.create_initial(uuid4(), 2025, "10")


async def test_snapshots_locked_once_allocated(service, two_members, period_2024):
    alice, _ = two_members
    period_2024.is_allocated = True

    with pytest.raises(ImmutableStateError):
        await service.set_capital_balance(alice.member_id, 2024, "1")


async def test_set_capital_balance(service, two_members, period_2024):
    alice, _ = two_members
    snapshot = await service.set_capital_balance(alice.member_id, 2024, "125000")
    assert snapshot.capital_balance == Decimal("125000")

    with pytest.raises(ValidationError):
        await service.set_capital_balance(alice.member_id, 2024, "-5")
    with pytest.raises(NotFoundError):
        await service.set_capital_balance(alice.member_id, 2031, "5")


class TestRollForward:
    async def test_from_unallocated_year_copies_snapshot(self, service, make_member):
        alice = await make_member("Alice", "60", "100000", final_percentage="65", is_finalized=True)
        await make_member("Bob", "40", "50000")

        created = await service.roll_forward(2024, 2025)

        by_member = {s.member_id: s for s in created}
        assert len(created) == 2
        assert by_member[alice.member_id].estimated_percentage == Decimal("65")
        assert by_member[alice.member_id].capital_balance == Decimal("100000")
        assert all(s.fiscal_year == 2025 and not s.is_finalized for s in created)

    async def test_from_allocated_year_uses_ending_capital(
        self, session, service, two_members, period_2024
    ):
        alice, bob = two_members
        period_2024.is_allocated = True
        session.add(
            MemberAllocation(
                financial_period_id=period_2024.financial_period_id,
                member_id=alice.member_id,
                fiscal_year=2024,
                equity_percentage=Decimal("60"),
                beginning_capital_balance=Decimal("100000"),
                balance_incentive_return=Decimal("8000"),
                equity_based_allocation=Decimal("592800"),
                allocation_amount=Decimal("600800"),
                distributions=Decimal("0"),
                ending_capital_balance=Decimal("700800"),
                effective_return_rate=Decimal("8"),
                allocation_date=utcnow(),
            )
        )
        await session.flush()

        created = await service.roll_forward(2024, 2025)

        by_member = {s.member_id: s for s in created}
        assert by_member[alice.member_id].capital_balance == Decimal("700800")
        # No allocation row: falls back to the prior snapshot
        assert by_member[bob.member_id].capital_balance == Decimal("50000")

    async def test_skips_inactive_members(self, service, make_member):
        await make_member("Alice", "100")
        await make_member("Rita", "0", status="retired")

        created = await service.roll_forward(2024, 2025)
        assert len(created) == 1

    async def test_target_already_open(self, service, make_member):
        await make_member("Alice", "100")
        await service.roll_forward(2024, 2025)
        with pytest.raises(ValidationError):
            await service.roll_forward(2024, 2025)

    async def test_backwards(self, service):
        with pytest.raises(ValidationError):
            await service.roll_forward(2024, 2024)
