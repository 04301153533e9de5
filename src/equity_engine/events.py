"""Domain events and a synchronous emitter.

Events are immutable records of what happened to periods, allocations and
board approvals. Services emit them after the state change is staged in the
session; handlers (notifications, dashboards) subscribe by type or category.
A failing handler is logged and reported back, never raised into the
emitting service.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, TypeVar
from uuid import UUID, uuid4

from equity_engine.models.base import utcnow

logger = logging.getLogger(__name__)


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PERIOD = "period"
    ALLOCATION = "allocation"
    RECONCILIATION = "reconciliation"
    APPROVAL = "approval"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID
    actor_id: str | None
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        actor_id: str | None = None,
        correlation_id: UUID | None = None,
        source_service: str = "equity_engine",
    ) -> EventMetadata:
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


def _serialize(obj: Any) -> Any:
    """Recursively convert values for JSON."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(v) for v in obj]
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Period Events
# =============================================================================


@dataclass(frozen=True)
class PeriodCreated(DomainEvent):
    fiscal_year: int
    final_allocable_amount: Decimal
    sofr_rate: Decimal
    sofr_source: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PERIOD


@dataclass(frozen=True)
class PeriodUpdated(DomainEvent):
    fiscal_year: int
    changed_fields: tuple[str, ...]
    final_allocable_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PERIOD


# =============================================================================
# Allocation Events
# =============================================================================


@dataclass(frozen=True)
class AllocationCommitted(DomainEvent):
    """A fiscal year's allocations were written and the period locked."""

    fiscal_year: int
    member_count: int
    total_allocated: Decimal
    rounding_remainder: Decimal
    is_reconciled: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.ALLOCATION


@dataclass(frozen=True)
class AllocationReversed(DomainEvent):
    fiscal_year: int
    removed_count: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.ALLOCATION


@dataclass(frozen=True)
class ReconciliationOverridden(DomainEvent):
    """An unreconciled period was allocated on an explicit override."""

    fiscal_year: int
    override_reason: str
    variance_keys: tuple[str, ...]

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION


# =============================================================================
# Board Approval Events
# =============================================================================


@dataclass(frozen=True)
class BoardApprovalCreated(DomainEvent):
    approval_id: UUID
    fiscal_year: int
    approval_type: str
    update_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class BoardApprovalSubmitted(DomainEvent):
    approval_id: UUID
    total_equity_after: Decimal
    warnings: tuple[str, ...]

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class BoardApprovalApproved(DomainEvent):
    approval_id: UUID
    approved_by: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class BoardApprovalApplied(DomainEvent):
    approval_id: UUID
    applied_by: str
    snapshot_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class BoardApprovalRejected(DomainEvent):
    approval_id: UUID
    rejected_by: str
    reason: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


# =============================================================================
# Emitter
# =============================================================================

T = TypeVar("T", bound=DomainEvent)
EventHandler = Callable[[DomainEvent], None]


@dataclass
class HandlerRegistration:
    handler: EventHandler
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories


class EventEmitter:
    """Synchronous event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(AllocationCommitted, notify_members)
        emitter.on_category(EventCategory.APPROVAL, log_approvals)

        with emitter.batch():
            emitter.emit(event1)
            emitter.emit(event2)
        # both dispatched when the block exits cleanly
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._batching = False
        self._batch: list[DomainEvent] = []

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append(HandlerRegistration(handler, types, None))

    def on_category(
        self, category: EventCategory | list[EventCategory], handler: EventHandler
    ) -> None:
        cats = set(category) if isinstance(category, list) else {category}
        self._handlers.append(HandlerRegistration(handler, None, cats))

    def on_all(self, handler: EventHandler) -> None:
        self._handlers.append(HandlerRegistration(handler, None, None))

    def off(self, handler: EventHandler) -> None:
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns the exceptions raised by handlers; while batching, the event
        is queued and nothing is returned.
        """
        if self._batching:
            self._batch.append(event)
            return []
        return self._dispatch(event)

    def _dispatch(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        event_type = event.event_type
        event_category = event.category

        for reg in list(self._handlers):
            if reg.event_types and event_type not in reg.event_types:
                continue
            if reg.categories and event_category not in reg.categories:
                continue
            try:
                reg.handler(event)
            except Exception as e:
                logger.exception("Handler %s failed for event %s", reg.handler, event_type)
                errors.append(e)

        return errors

    def batch(self) -> EventBatch:
        """Hold events until the block exits; discard them if it raises."""
        return EventBatch(self)


class EventBatch:
    """Context manager for batching events."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._batching = True
        self._emitter._batch = []
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        events = self._emitter._batch
        self._emitter._batching = False
        self._emitter._batch = []
        if exc_type is None:
            for event in events:
                self._errors.extend(self._emitter._dispatch(event))

    def add(self, event: DomainEvent) -> None:
        self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after the block exits)."""
        return self._errors
