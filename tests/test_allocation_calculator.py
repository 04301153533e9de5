"""Tests for the two-pass allocation calculator."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from equity_engine.calculators.allocation import (
    AllocationCalculator,
    effective_return_rate,
    floor_currency,
)
from equity_engine.calculators.types import MemberPosition
from equity_engine.errors import InputError, PeriodLockedError


def position(member_id, capital, pct, distributions="0", **kwargs) -> MemberPosition:
    return MemberPosition(
        member_id=member_id,
        capital_balance=Decimal(capital),
        estimated_percentage=None if pct is None else Decimal(pct),
        distributions=Decimal(distributions),
        **kwargs,
    )


@pytest.fixture
def calculator() -> AllocationCalculator:
    return AllocationCalculator()


class TestEffectiveReturnRate:
    """Incentive rate is SOFR plus spread, capped."""

    @pytest.mark.parametrize(
        "sofr, expected",
        [("0", "5"), ("5", "10"), ("5.5", "10"), ("3.0", "8"), ("4.99", "9.99")],
    )
    def test_rate_is_capped(self, sofr, expected):
        assert effective_return_rate(Decimal(sofr)) == Decimal(expected)

    def test_rate_rounds_half_up_to_hundredths(self):
        assert effective_return_rate(Decimal("2.345")) == Decimal("7.35")
        assert effective_return_rate(Decimal("2.344")) == Decimal("7.34")

    def test_custom_spread_and_cap(self):
        assert effective_return_rate(Decimal("3"), Decimal("2"), Decimal("4")) == Decimal("4")
        assert effective_return_rate(Decimal("1"), Decimal("2"), Decimal("4")) == Decimal("3")


class TestFloorCurrency:
    def test_positive_values_truncate(self):
        assert floor_currency(Decimal("333.999")) == Decimal("333")

    def test_negative_values_go_down(self):
        assert floor_currency(Decimal("-2333.331")) == Decimal("-2334")

    def test_whole_values_unchanged(self):
        assert floor_currency(Decimal("8000.00")) == Decimal("8000")


class TestWorkedExample:
    """FY2024: 1,000,000 allocable, SOFR 3.0, A 100k/60%, B 50k/40%."""

    @pytest.fixture
    def result(self, calculator):
        return calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000000"),
            sofr_rate=Decimal("3.0"),
            positions=[position("A", "100000", "60"), position("B", "50000", "40")],
        )

    def test_rate(self, result):
        assert result.effective_return_rate == Decimal("8")

    def test_pass_one(self, result):
        assert result.line_for("A").balance_incentive_return == Decimal("8000")
        assert result.line_for("B").balance_incentive_return == Decimal("4000")
        assert result.total_balance_incentive_returns == Decimal("12000")
        assert result.remaining_net_income == Decimal("988000")

    def test_pass_two(self, result):
        assert result.line_for("A").equity_based_allocation == Decimal("592800")
        assert result.line_for("B").equity_based_allocation == Decimal("395200")

    def test_totals(self, result):
        assert result.line_for("A").allocation_amount == Decimal("600800")
        assert result.line_for("B").allocation_amount == Decimal("399200")
        assert result.total_allocated == Decimal("1000000")
        assert result.rounding_remainder == Decimal("0")
        assert result.warnings == ()

    def test_ending_capital(self, result):
        assert result.line_for("A").ending_capital_balance == Decimal("700800")
        assert result.line_for("B").ending_capital_balance == Decimal("449200")
        assert result.total_ending_capital == Decimal("1150000")


class TestTwoPassDependency:
    """Every equity-based share depends on the complete pass-one sum."""

    def _run(self, calculator, capital_a):
        return calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000000"),
            sofr_rate=Decimal("3.0"),
            positions=[
                position("A", capital_a, "50"),
                position("B", "50000", "30"),
                position("C", "25000", "20"),
            ],
        )

    def test_perturbing_one_capital_shifts_every_member(self, calculator):
        before = self._run(calculator, "100000")
        after = self._run(calculator, "200000")

        assert before.remaining_net_income == Decimal("986000")
        assert after.remaining_net_income == Decimal("978000")
        for member_id in ("A", "B", "C"):
            assert (
                after.line_for(member_id).equity_based_allocation
                < before.line_for(member_id).equity_based_allocation
            )
        # Only A's pass-one return moved
        assert after.line_for("B").balance_incentive_return == Decimal("4000")
        assert after.line_for("C").balance_incentive_return == Decimal("2000")

    def test_equity_share_uses_full_remaining_pool(self, calculator):
        result = self._run(calculator, "100000")
        for line in result.lines:
            expected = floor_currency(
                result.remaining_net_income * line.equity_percentage / 100
            )
            assert line.equity_based_allocation == expected


class TestRoundingRemainder:
    def test_remainder_is_reported_not_absorbed(self, calculator):
        result = calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000"),
            sofr_rate=Decimal("0"),
            positions=[
                position("A", "0", "33.3333"),
                position("B", "0", "33.3333"),
                position("C", "0", "33.3334"),
            ],
        )
        assert [line.allocation_amount for line in result.lines] == [Decimal("333")] * 3
        assert result.total_allocated == Decimal("999")
        assert result.rounding_remainder == Decimal("1")

    def test_zero_capital_members_share_pass_two(self, calculator):
        result = calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("10000"),
            sofr_rate=Decimal("3.0"),
            positions=[position("A", "0", "50"), position("B", "10000", "50")],
        )
        assert result.line_for("A").balance_incentive_return == Decimal("0")
        assert result.line_for("A").equity_based_allocation == Decimal("4600")


class TestNegativeRemaining:
    """Loss-making pools pass through unclamped."""

    def test_negative_remaining_is_not_clamped(self, calculator):
        result = calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000"),
            sofr_rate=Decimal("3.0"),
            positions=[position("A", "100000", "60"), position("B", "0", "40")],
        )
        assert result.remaining_net_income == Decimal("-7000")
        assert result.remaining_net_income_negative is True
        assert result.line_for("A").equity_based_allocation == Decimal("-4200")
        assert result.line_for("B").equity_based_allocation == Decimal("-2800")
        assert result.line_for("A").allocation_amount == Decimal("3800")
        assert any("exceed" in w for w in result.warnings)

    def test_negative_capital_earns_negative_return(self, calculator):
        result = calculator.calculate(
            fiscal_year=2025,
            final_allocable_amount=Decimal("100000"),
            sofr_rate=Decimal("3.0"),
            positions=[position("A", "-9000", "50"), position("B", "-4000", "50")],
        )
        assert result.line_for("A").balance_incentive_return == Decimal("-720")
        assert result.line_for("B").balance_incentive_return == Decimal("-320")
        assert result.remaining_net_income == Decimal("101040")
        assert result.line_for("A").allocation_amount == Decimal("49800")
        assert result.rounding_remainder == Decimal("0")
        assert any("negative capital balance" in w for w in result.warnings)


class TestPercentageResolution:
    def test_finalized_uses_final_percentage(self, calculator):
        result = calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000"),
            sofr_rate=Decimal("0"),
            positions=[
                MemberPosition(
                    member_id="A",
                    capital_balance=Decimal("0"),
                    estimated_percentage=Decimal("60"),
                    final_percentage=Decimal("100"),
                    is_finalized=True,
                )
            ],
        )
        assert result.line_for("A").equity_percentage == Decimal("100")

    def test_unfinalized_uses_estimate(self):
        pos = MemberPosition(
            member_id="A",
            capital_balance=Decimal("0"),
            estimated_percentage=Decimal("60"),
            final_percentage=Decimal("70"),
            is_finalized=False,
        )
        assert pos.equity_percentage == Decimal("60")

    def test_missing_estimate_falls_back_to_final(self):
        pos = MemberPosition(
            member_id="A",
            capital_balance=Decimal("0"),
            final_percentage=Decimal("70"),
        )
        assert pos.equity_percentage == Decimal("70")

    def test_total_not_100_is_a_warning(self, calculator):
        result = calculator.calculate(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000"),
            sofr_rate=Decimal("0"),
            positions=[position("A", "0", "60"), position("B", "0", "30")],
        )
        assert result.total_equity_percentage == Decimal("90")
        assert any("not 100%" in w for w in result.warnings)


class TestInputErrors:
    def test_missing_percentage(self, calculator):
        with pytest.raises(InputError) as exc_info:
            calculator.calculate(2024, Decimal("1000"), Decimal("3"), [position("A", "0", None)])
        assert exc_info.value.member_id == "A"
        assert exc_info.value.field == "equity_percentage"

    def test_empty_roster(self, calculator):
        with pytest.raises(InputError):
            calculator.calculate(2024, Decimal("1000"), Decimal("3"), [])

    def test_duplicate_member(self, calculator):
        with pytest.raises(InputError):
            calculator.calculate(
                2024,
                Decimal("1000"),
                Decimal("3"),
                [position("A", "0", "50"), position("A", "0", "50")],
            )

    def test_negative_percentage(self, calculator):
        with pytest.raises(InputError):
            calculator.calculate(2024, Decimal("1000"), Decimal("3"), [position("A", "0", "-5")])

    def test_allocated_period_is_locked(self, calculator):
        period = SimpleNamespace(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000"),
            sofr_rate=Decimal("3"),
            is_allocated=True,
        )
        with pytest.raises(PeriodLockedError) as exc_info:
            calculator.calculate_for_period(period, [position("A", "0", "100")])
        assert exc_info.value.fiscal_year == 2024

    def test_open_period_calculates(self, calculator):
        period = SimpleNamespace(
            fiscal_year=2024,
            final_allocable_amount=Decimal("1000"),
            sofr_rate=Decimal("3"),
            is_allocated=False,
        )
        result = calculator.calculate_for_period(period, [position("A", "0", "100")])
        assert result.total_allocated == Decimal("1000")


def test_result_to_dict_is_string_encoded(calculator):
    result = calculator.calculate(
        2024, Decimal("1000"), Decimal("3.0"), [position("A", "1000", "100")]
    )
    data = result.to_dict()
    assert data["fiscal_year"] == 2024
    assert data["effective_return_rate"] == "8.00"
    assert data["lines"][0]["balance_incentive_return"] == "80"
    assert data["lines"][0]["member_id"] == "A"
