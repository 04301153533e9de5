"""Error taxonomy for the allocation engine.

Every error is a value the caller can inspect: the attributes carry the
field, entity or state detail needed to render a message without parsing
``str(exc)``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from equity_engine.services.reconciliation import ReconciliationReport


class EquityEngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {"detail": str(self), "code": self.code}


class ValidationError(EquityEngineError):
    """Malformed or missing required input."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: list[str] | None = None,
    ):
        self.field = field
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        data["details"] = self.details
        return data


class InputError(ValidationError):
    """Allocation calculator received an unusable roster entry."""

    code = "INPUT_ERROR"

    def __init__(self, message: str, member_id: str | None = None, field: str | None = None):
        self.member_id = member_id
        super().__init__(message, field=field)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["member_id"] = self.member_id
        return data


class NotFoundError(EquityEngineError):
    """Requested record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class ImmutableStateError(EquityEngineError):
    """Mutation attempted on finalized state."""

    code = "IMMUTABLE_STATE"

    def __init__(self, entity: str, entity_id: Any, reason: str):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity} {entity_id} is immutable: {reason}")


class PeriodLockedError(EquityEngineError):
    """Allocation attempted against an already allocated fiscal year."""

    code = "PERIOD_LOCKED"

    def __init__(self, fiscal_year: int):
        self.fiscal_year = fiscal_year
        super().__init__(
            f"Fiscal year {fiscal_year} is already allocated; "
            "reverse the allocation before recomputing"
        )


class InvalidTransitionError(EquityEngineError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(getattr(from_status, "value", from_status))
        self.to_status = str(getattr(to_status, "value", to_status))
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["from_status"] = self.from_status
        data["to_status"] = self.to_status
        return data


class AuthorizationError(EquityEngineError):
    """Actor lacks the capability required for an action."""

    code = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str | None, capability: str):
        self.actor_id = actor_id
        self.capability = capability
        super().__init__(f"Actor {actor_id!r} lacks capability '{capability}'")


class ReconciliationVarianceError(EquityEngineError):
    """Allocation commit attempted on an unreconciled period without override."""

    code = "RECONCILIATION_VARIANCE"

    def __init__(self, fiscal_year: int, report: ReconciliationReport):
        self.fiscal_year = fiscal_year
        self.report = report
        failing = [
            item.key for item in report.items if item.status != "matched"
        ]
        super().__init__(
            f"Fiscal year {fiscal_year} does not reconcile "
            f"({', '.join(failing)}); supply an override reason to proceed"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["report"] = self.report.to_dict()
        return data


class ConflictError(EquityEngineError):
    """Concurrent modification of the same fiscal year."""

    code = "CONFLICT"

    def __init__(self, fiscal_year: int, reason: str):
        self.fiscal_year = fiscal_year
        self.reason = reason
        super().__init__(f"Conflict on fiscal year {fiscal_year}: {reason}")
