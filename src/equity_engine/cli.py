"""Equity engine command line interface.

Runs the pure calculations against JSON files, without a database:

Usage:
    python -m equity_engine.cli preview --input roster.json
    python -m equity_engine.cli reconcile --system system.json --balance-sheet sheet.json

Roster file::

    {
      "fiscal_year": 2024,
      "net_income": "1000000", "accruals": "0", "adjustments": "0",
      "sofr_rate": "3.0",
      "members": [
        {"member_id": "A", "capital_balance": "100000", "estimated_percentage": "60"}
      ]
    }

``final_allocable_amount`` may be given instead of the three components.
Totals files map line keys (``member_capital_accounts``, ``allocated_amount``,
``total_equity_percentage``, ...) to amounts.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable

from equity_engine.calculators.allocation import (
    DEFAULT_INCENTIVE_RATE_CAP,
    DEFAULT_INCENTIVE_SPREAD,
    AllocationCalculator,
)
from equity_engine.calculators.types import ZERO, MemberPosition, as_decimal
from equity_engine.errors import EquityEngineError, InputError
from equity_engine.models.financials import ALLOCABLE_COMPONENTS
from equity_engine.services.reconciliation import (
    DEFAULT_CAPITAL_TOLERANCE,
    DEFAULT_PERCENTAGE_TOLERANCE,
    default_tolerances,
    reconcile,
)

logger = logging.getLogger(__name__)


def _load_json(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh, parse_float=Decimal)
    except OSError as exc:
        raise InputError(f"Cannot read {path}: {exc.strerror}", field=str(path)) from exc
    except json.JSONDecodeError as exc:
        raise InputError(f"{path} is not valid JSON: {exc}", field=str(path)) from exc
    if not isinstance(data, dict):
        raise InputError(f"{path} must contain a JSON object", field=str(path))
    return data


def _optional_decimal(value: Any) -> Decimal | None:
    return None if value is None else as_decimal(value)


def position_from_dict(data: dict[str, Any]) -> MemberPosition:
    """Build a calculator input from one roster entry."""
    return MemberPosition(
        member_id=str(data["member_id"]),
        capital_balance=as_decimal(data.get("capital_balance", ZERO)),
        estimated_percentage=_optional_decimal(data.get("estimated_percentage")),
        final_percentage=_optional_decimal(data.get("final_percentage")),
        is_finalized=bool(data.get("is_finalized", False)),
        distributions=as_decimal(data.get("distributions", ZERO)),
    )


def allocable_amount_from_dict(data: dict[str, Any]) -> Decimal:
    if "final_allocable_amount" in data:
        return as_decimal(data["final_allocable_amount"])
    return sum((as_decimal(data.get(name, ZERO)) for name in ALLOCABLE_COMPONENTS), ZERO)



# Failures of int(), Decimal() and key lookups on hand-written files
MALFORMED_INPUT = (KeyError, TypeError, ValueError, InvalidOperation)


def _malformed(path: Path, exc: Exception) -> InputError:
    if isinstance(exc, KeyError):
        field = str(exc.args[0])
        return InputError(f"{path} is missing required field {field!r}", field=field)
    return InputError(f"{path} has a malformed value: {exc!r}", field=str(path))


def totals_from_dict(data: dict[str, Any]) -> dict[str, Decimal | None]:
    """Line key to amount, with nulls kept as missing lines."""
    return {str(key): _optional_decimal(value) for key, value in data.items()}


class EquityCli:
    """Equity engine command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="python -m equity_engine.cli",
            description="Member equity allocation tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        preview = subparsers.add_parser(
            "preview",
            help="Calculate a year-end allocation from a roster file",
        )
        preview.add_argument("--input", type=Path, required=True, help="Roster JSON file")
        preview.add_argument(
            "--spread",
            type=Decimal,
            default=DEFAULT_INCENTIVE_SPREAD,
            help="Points added to SOFR for the incentive rate",
        )
        preview.add_argument(
            "--cap",
            type=Decimal,
            default=DEFAULT_INCENTIVE_RATE_CAP,
            help="Maximum incentive rate in percent",
        )

        recon = subparsers.add_parser(
            "reconcile",
            help="Compare system totals with balance-sheet totals",
        )
        recon.add_argument("--system", type=Path, required=True, help="System totals JSON")
        recon.add_argument(
            "--balance-sheet", type=Path, required=True, help="Balance-sheet totals JSON"
        )
        recon.add_argument(
            "--capital-tolerance", type=Decimal, default=DEFAULT_CAPITAL_TOLERANCE
        )
        recon.add_argument(
            "--percentage-tolerance", type=Decimal, default=DEFAULT_PERCENTAGE_TOLERANCE
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "preview": self._cmd_preview,
            "reconcile": self._cmd_reconcile,
        }
        try:
            return handlers[parsed.command](parsed)
        except EquityEngineError as exc:
            print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
            return 2

    def _cmd_preview(self, args: argparse.Namespace) -> int:
        data = _load_json(args.input)
        try:
            fiscal_year = int(data["fiscal_year"])
            allocable = allocable_amount_from_dict(data)
            sofr_rate = as_decimal(data["sofr_rate"])
            positions = [position_from_dict(m) for m in data.get("members", [])]
        except MALFORMED_INPUT as exc:
            raise _malformed(args.input, exc) from exc

        calculator = AllocationCalculator(args.spread, args.cap)
        result = calculator.calculate(
            fiscal_year=fiscal_year,
            final_allocable_amount=allocable,
            sofr_rate=sofr_rate,
            positions=positions,
        )
        for warning in result.warnings:
            logger.warning(warning)
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    def _cmd_reconcile(self, args: argparse.Namespace) -> int:
        totals = []
        for path in (args.system, args.balance_sheet):
            try:
                totals.append(totals_from_dict(_load_json(path)))
            except MALFORMED_INPUT as exc:
                raise _malformed(path, exc) from exc
        system, sheet = totals
        report = reconcile(
            system,
            sheet,
            default_tolerances(args.capital_tolerance, args.percentage_tolerance),
        )
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.is_reconciled else 1


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    cli = EquityCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
