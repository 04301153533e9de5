"""Configuration management for the equity engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    engine_version: str
    host: str
    port: int
    debug: bool

    # Allocation policy
    incentive_spread: Decimal
    incentive_rate_cap: Decimal

    # Reconciliation / validation thresholds
    capital_tolerance: Decimal
    percentage_tolerance: Decimal
    large_change_threshold: Decimal

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./equity_engine.db",
            ),
            engine_version=os.getenv("ENGINE_VERSION", "1.0.0"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            incentive_spread=Decimal(os.getenv("INCENTIVE_SPREAD", "5.0")),
            incentive_rate_cap=Decimal(os.getenv("INCENTIVE_RATE_CAP", "10.0")),
            capital_tolerance=Decimal(os.getenv("CAPITAL_TOLERANCE", "10000")),
            percentage_tolerance=Decimal(os.getenv("PERCENTAGE_TOLERANCE", "0.1")),
            large_change_threshold=Decimal(os.getenv("LARGE_CHANGE_THRESHOLD", "10.0")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
