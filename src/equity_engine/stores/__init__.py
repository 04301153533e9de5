"""Collaborator protocols and their implementations."""

from equity_engine.stores.auth import (
    CAPABILITY_APPLY,
    CAPABILITY_APPROVE,
    HeaderCapabilityAuthorizer,
    StaticCapabilityAuthorizer,
    parse_capabilities,
    require_capability,
)
from equity_engine.stores.base import (
    Actor,
    AllocationStore,
    ApprovalAuthorizer,
    FinancialPeriodStore,
    MemberStore,
    RosterEntry,
    SofrQuote,
    SofrRateSource,
)
from equity_engine.stores.sofr import ManualSofrRateSource
from equity_engine.stores.sql import (
    SqlAllocationStore,
    SqlFinancialPeriodStore,
    SqlMemberStore,
)

__all__ = [
    "CAPABILITY_APPLY",
    "CAPABILITY_APPROVE",
    "Actor",
    "AllocationStore",
    "ApprovalAuthorizer",
    "FinancialPeriodStore",
    "HeaderCapabilityAuthorizer",
    "ManualSofrRateSource",
    "MemberStore",
    "RosterEntry",
    "SofrQuote",
    "SofrRateSource",
    "SqlAllocationStore",
    "SqlFinancialPeriodStore",
    "SqlMemberStore",
    "StaticCapabilityAuthorizer",
    "parse_capabilities",
    "require_capability",
]
