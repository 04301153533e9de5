"""Tests for the financial period service."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from equity_engine.errors import ImmutableStateError, NotFoundError, ValidationError
from equity_engine.events import EventEmitter, PeriodCreated, PeriodUpdated
from equity_engine.models import AuditEvent
from equity_engine.services import PeriodService
from equity_engine.stores import ManualSofrRateSource


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def service(session, emitter):
    return PeriodService(
        session,
        sofr_source=ManualSofrRateSource({2025: Decimal("4.25")}),
        emitter=emitter,
    )


class TestCreatePeriod:
    async def test_allocable_amount_is_derived(self, service):
        period = await service.create_period(
            2024,
            net_income="900000",
            accruals="150000",
            adjustments="-50000",
            sofr_rate="3.0",
            total_equity_balance_sheet="1150000",
        )
        assert period.final_allocable_amount == Decimal("1000000")
        assert period.sofr_source == "Manual Entry"
        assert period.is_allocated is False
        assert period.version == 1

    async def test_rate_from_source(self, service):
        period = await service.create_period(2025, net_income="1000")
        assert period.sofr_rate == Decimal("4.25")
        assert period.sofr_source == "Manual Entry"
        assert period.sofr_period == "FY2025"

    async def test_no_rate_and_no_source(self, session):
        service = PeriodService(session)
        with pytest.raises(ValidationError) as exc_info:
            await service.create_period(2024, net_income="1000")
        assert exc_info.value.field == "sofr_rate"

    async def test_source_without_year(self, service):
        with pytest.raises(NotFoundError):
            await service.create_period(2030, net_income="1000")

    async def test_negative_rate_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_period(2024, net_income="1000", sofr_rate="-0.1")
        assert exc_info.value.field == "sofr_rate"

    async def test_duplicate_year_rejected(self, service):
        await service.create_period(2024, net_income="1000", sofr_rate="3")
        with pytest.raises(ValidationError) as exc_info:
            await service.create_period(2024, net_income="2000", sofr_rate="3")
        assert exc_info.value.field == "fiscal_year"

    @pytest.mark.parametrize("year", [1899, 3000])
    async def test_year_out_of_range(self, service, year):
        with pytest.raises(ValidationError):
            await service.create_period(year, net_income="1000", sofr_rate="3")

    async def test_audit_and_event(self, session, service, emitter):
        received = []
        emitter.on(PeriodCreated, received.append)

        await service.create_period(2024, net_income="1000", sofr_rate="3", created_by="cfo")
        await session.flush()

        audits = (await session.execute(select(AuditEvent))).scalars().all()
        assert [(a.entity_id, a.action, a.actor_id) for a in audits] == [
            ("2024", "created", "cfo")
        ]
        assert received[0].fiscal_year == 2024
        assert received[0].metadata.actor_id == "cfo"


class TestUpdatePeriod:
    async def test_update_recomputes_and_bumps_version(self, service, period_2024, emitter):
        received = []
        emitter.on(PeriodUpdated, received.append)
        period_2024.is_reconciled = True

        period = await service.update_period(2024, actor_id="cfo", accruals="25000")

        assert period.final_allocable_amount == Decimal("1025000")
        assert period.version == 2
        assert period.is_reconciled is False
        assert received[0].changed_fields == ("accruals",)

    async def test_non_decimal_fields(self, service, period_2024):
        period = await service.update_period(2024, notes="restated", sofr_source="FRBNY")
        assert period.notes == "restated"
        assert period.sofr_source == "FRBNY"
        assert period.final_allocable_amount == Decimal("1000000")

    async def test_unknown_field(self, service, period_2024):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_period(2024, is_allocated=True)
        assert exc_info.value.field == "is_allocated"

    async def test_no_fields(self, service, period_2024):
        with pytest.raises(ValidationError):
            await service.update_period(2024)

    async def test_null_amount(self, service, period_2024):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_period(2024, net_income=None)
        assert exc_info.value.field == "net_income"

    async def test_negative_rate(self, service, period_2024):
        with pytest.raises(ValidationError):
            await service.update_period(2024, sofr_rate="-1")

    async def test_allocated_period_is_immutable(self, service, period_2024):
        period_2024.is_allocated = True
        with pytest.raises(ImmutableStateError):
            await service.update_period(2024, net_income="1")

    async def test_missing_period(self, service):
        with pytest.raises(NotFoundError):
            await service.update_period(2024, net_income="1")


async def test_list_periods(service):
    await service.create_period(2023, net_income="1", sofr_rate="3")
    await service.create_period(2024, net_income="1", sofr_rate="3")
    periods = await service.list_periods()
    assert [p.fiscal_year for p in periods] == [2023, 2024]
