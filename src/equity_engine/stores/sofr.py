"""SOFR rate sources."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from equity_engine.errors import NotFoundError
from equity_engine.stores.base import SofrQuote

MANUAL_SOURCE = "Manual Entry"


class ManualSofrRateSource:
    """Rates entered by hand, keyed by fiscal year."""

    def __init__(
        self,
        rates: Mapping[int, Decimal | SofrQuote] | None = None,
        source: str = MANUAL_SOURCE,
    ):
        self.source = source
        self._quotes: dict[int, SofrQuote] = {}
        for fiscal_year, rate in (rates or {}).items():
            self.set_rate(fiscal_year, rate)

    def set_rate(self, fiscal_year: int, rate: Decimal | SofrQuote) -> None:
        if isinstance(rate, SofrQuote):
            self._quotes[fiscal_year] = rate
        else:
            self._quotes[fiscal_year] = SofrQuote(
                rate=Decimal(str(rate)),
                source=self.source,
                period=f"FY{fiscal_year}",
            )

    async def get_rate(self, fiscal_year: int) -> SofrQuote:
        try:
            return self._quotes[fiscal_year]
        except KeyError:
            raise NotFoundError("SOFR rate", fiscal_year) from None
