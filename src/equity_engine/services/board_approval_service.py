"""Board approval service - governed equity percentage changes."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from datetime import date
from decimal import Decimal
from typing import Hashable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.calculators.pro_rata import EquityHolding, pro_rata_adjustment
from equity_engine.calculators.types import HUNDRED, ZERO, as_decimal
from equity_engine.calculators.validation import (
    CurrentEquity,
    EquityUpdateValidation,
    ProposedUpdate,
    validate_equity_updates,
)
from equity_engine.config import Settings, get_settings
from equity_engine.errors import (
    ImmutableStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from equity_engine.events import (
    BoardApprovalApplied,
    BoardApprovalApproved,
    BoardApprovalCreated,
    BoardApprovalRejected,
    BoardApprovalSubmitted,
    EventEmitter,
    EventMetadata,
)
from equity_engine.models import (
    ApprovalType,
    BoardApproval,
    EquityUpdate,
    MemberEquitySnapshot,
    utcnow,
)
from equity_engine.services.audit import record_audit
from equity_engine.services.state_machine import (
    BoardApprovalStateMachine,
    BoardApprovalStatus,
)
from equity_engine.stores.auth import CAPABILITY_APPLY, CAPABILITY_APPROVE, require_capability
from equity_engine.stores.base import (
    Actor,
    ApprovalAuthorizer,
    FinancialPeriodStore,
    MemberStore,
)
from equity_engine.stores.sql import SqlFinancialPeriodStore, SqlMemberStore

logger = logging.getLogger(__name__)


def apply_update_to_snapshot(
    snapshot: MemberEquitySnapshot, approval_type: str, new_percentage: Decimal
) -> None:
    """Write an approved percentage onto a snapshot according to the approval type."""
    if approval_type == ApprovalType.ANNUAL_EQUITY_UPDATE.value:
        snapshot.final_percentage = new_percentage
        snapshot.is_finalized = True
    elif approval_type == ApprovalType.MEMBER_EXIT.value:
        snapshot.estimated_percentage = new_percentage
        snapshot.final_percentage = new_percentage
    else:
        snapshot.estimated_percentage = new_percentage


class BoardApprovalService:
    """Service for the board approval lifecycle.

    Operations:
    - create_draft: record proposed per-member changes
    - submit: DRAFT → PENDING_APPROVAL (re-validates, stores warnings)
    - approve: PENDING_APPROVAL → APPROVED (needs equity.approve)
    - reject: PENDING_APPROVAL → REJECTED (needs equity.approve)
    - apply: APPROVED → APPLIED, all snapshots or none (needs equity.apply)
    - revise: new DRAFT superseding a rejected approval
    """

    def __init__(
        self,
        session: AsyncSession,
        authorizer: ApprovalAuthorizer,
        member_store: MemberStore | None = None,
        period_store: FinancialPeriodStore | None = None,
        emitter: EventEmitter | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.authorizer = authorizer
        self.member_store = member_store or SqlMemberStore(session)
        self.period_store = period_store or SqlFinancialPeriodStore(session)
        self.emitter = emitter or EventEmitter()
        self.large_change_threshold = (settings or get_settings()).large_change_threshold

    async def get_approval(self, approval_id: UUID) -> BoardApproval:
        approval = await self.session.get(BoardApproval, approval_id)
        if approval is None:
            raise NotFoundError("BoardApproval", approval_id)
        return approval

    async def _snapshots_by_member(self, fiscal_year: int) -> dict[Hashable, MemberEquitySnapshot]:
        snapshots = await self.member_store.get_snapshots(fiscal_year)
        return {snapshot.member_id: snapshot for snapshot in snapshots}

    async def current_equity(self, fiscal_year: int) -> dict[Hashable, CurrentEquity]:
        """The roster as the update validator sees it."""
        return {
            member_id: CurrentEquity(
                member_id=member_id,
                name=snapshot.member.full_name,
                percentage=snapshot.effective_percentage or ZERO,
                is_active=snapshot.member.is_active,
                status=snapshot.member.status,
            )
            for member_id, snapshot in (await self._snapshots_by_member(fiscal_year)).items()
        }

    async def _validate(
        self, fiscal_year: int, updates: Sequence[ProposedUpdate]
    ) -> EquityUpdateValidation:
        current = await self.current_equity(fiscal_year)
        validation = validate_equity_updates(current, updates, self.large_change_threshold)
        if not validation.is_valid:
            raise ValidationError(
                "Equity updates failed validation",
                field="updates",
                details=validation.errors,
            )
        return validation

    async def create_draft(
        self,
        fiscal_year: int,
        approval_type: str,
        title: str,
        updates: Sequence[ProposedUpdate],
        submitted_by: str,
        effective_date: date,
        description: str | None = None,
        notes: str | None = None,
        supersedes_id: UUID | None = None,
    ) -> BoardApproval:
        try:
            approval_type = ApprovalType(approval_type).value
        except ValueError:
            raise ValidationError(
                f"Unknown approval type {approval_type!r}", field="approval_type"
            ) from None
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")

        validation = await self._validate(fiscal_year, updates)
        current = await self.current_equity(fiscal_year)

        rows = []
        for position, update in enumerate(updates):
            previous = current[update.member_id].percentage
            new = as_decimal(update.new_percentage)
            rows.append(
                EquityUpdate(
                    member_id=update.member_id,
                    position=position,
                    previous_percentage=previous,
                    new_percentage=new,
                    change_percentage=new - previous,
                    change_reason=update.change_reason,
                    warnings=list(validation.member_warnings.get(update.member_id, [])),
                )
            )

        approval = BoardApproval(
            fiscal_year=fiscal_year,
            approval_type=approval_type,
            title=title.strip(),
            description=description,
            status=BoardApprovalStatus.DRAFT.value,
            effective_date=effective_date,
            total_equity_before=validation.total_before,
            total_equity_after=validation.total_after,
            warnings=list(validation.warnings),
            submitted_by=submitted_by,
            supersedes_id=supersedes_id,
            notes=notes,
            updates=rows,
        )
        self.session.add(approval)
        await self.session.flush()

        record_audit(
            self.session,
            entity_type="board_approval",
            entity_id=approval.approval_id,
            action="created",
            actor_id=submitted_by,
            details={"fiscal_year": fiscal_year, "updates": len(rows)},
        )
        logger.info(
            "Created %s approval %s for %s with %d updates",
            approval_type,
            approval.approval_id,
            fiscal_year,
            len(rows),
        )
        self.emitter.emit(
            BoardApprovalCreated(
                metadata=EventMetadata.create(actor_id=submitted_by),
                approval_id=approval.approval_id,
                fiscal_year=fiscal_year,
                approval_type=approval_type,
                update_count=len(rows),
            )
        )
        return approval

    def _transition(self, approval: BoardApproval, to_status: BoardApprovalStatus) -> str:
        from_status = approval.status
        BoardApprovalStateMachine.validate_transition(from_status, to_status)
        approval.status = to_status.value
        logger.info(
            "Board approval %s: %s -> %s", approval.approval_id, from_status, to_status.value
        )
        return from_status

    def _audit_transition(
        self,
        approval: BoardApproval,
        from_status: str,
        actor_id: str,
        details: dict | None = None,
    ) -> None:
        record_audit(
            self.session,
            entity_type="board_approval",
            entity_id=approval.approval_id,
            action=f"status_change:{from_status}:{approval.status}",
            actor_id=actor_id,
            details=details,
        )

    async def submit(self, approval_id: UUID, actor_id: str) -> BoardApproval:
        """Send a draft to the board.

        An off-100 total is recorded as a warning and does not block.
        """
        approval = await self.get_approval(approval_id)
        BoardApprovalStateMachine.validate_transition(
            approval.status, BoardApprovalStatus.PENDING_APPROVAL
        )
        if not approval.updates:
            raise ValidationError("An approval needs at least one equity update", field="updates")

        proposed = [
            ProposedUpdate(u.member_id, u.new_percentage, u.change_reason)
            for u in approval.updates
        ]
        validation = await self._validate(approval.fiscal_year, proposed)
        approval.total_equity_after = validation.total_after
        approval.warnings = list(validation.warnings)

        from_status = self._transition(approval, BoardApprovalStatus.PENDING_APPROVAL)
        approval.submitted_at = utcnow()
        await self.session.flush()

        self._audit_transition(
            approval, from_status, actor_id, {"warnings": list(validation.warnings)}
        )
        self.emitter.emit(
            BoardApprovalSubmitted(
                metadata=EventMetadata.create(actor_id=actor_id),
                approval_id=approval.approval_id,
                total_equity_after=validation.total_after,
                warnings=tuple(validation.warnings),
            )
        )
        return approval

    async def approve(self, approval_id: UUID, actor: Actor) -> BoardApproval:
        require_capability(self.authorizer, actor, CAPABILITY_APPROVE)
        approval = await self.get_approval(approval_id)

        from_status = self._transition(approval, BoardApprovalStatus.APPROVED)
        approval.approved_by = actor.actor_id
        approval.approved_at = utcnow()
        await self.session.flush()

        self._audit_transition(approval, from_status, actor.actor_id)
        self.emitter.emit(
            BoardApprovalApproved(
                metadata=EventMetadata.create(actor_id=actor.actor_id),
                approval_id=approval.approval_id,
                approved_by=actor.actor_id,
            )
        )
        return approval

    async def reject(
        self, approval_id: UUID, actor: Actor, reason: str | None = None
    ) -> BoardApproval:
        require_capability(self.authorizer, actor, CAPABILITY_APPROVE)
        approval = await self.get_approval(approval_id)

        from_status = self._transition(approval, BoardApprovalStatus.REJECTED)
        approval.rejected_by = actor.actor_id
        approval.rejected_at = utcnow()
        approval.rejection_reason = reason
        await self.session.flush()

        self._audit_transition(approval, from_status, actor.actor_id, {"reason": reason})
        self.emitter.emit(
            BoardApprovalRejected(
                metadata=EventMetadata.create(actor_id=actor.actor_id),
                approval_id=approval.approval_id,
                rejected_by=actor.actor_id,
                reason=reason,
            )
        )
        return approval

    async def apply(self, approval_id: UUID, actor: Actor) -> BoardApproval:
        """Write every update onto its snapshot, or none of them.

        All updates are checked against the current snapshots before the
        first one is written.
        """
        require_capability(self.authorizer, actor, CAPABILITY_APPLY)
        approval = await self.get_approval(approval_id)
        BoardApprovalStateMachine.validate_transition(
            approval.status, BoardApprovalStatus.APPLIED
        )

        period = await self.period_store.get(approval.fiscal_year)
        if period is not None and period.is_allocated:
            raise ImmutableStateError(
                "MemberEquitySnapshot",
                approval.fiscal_year,
                "fiscal year has been allocated",
            )

        snapshots = await self._snapshots_by_member(approval.fiscal_year)
        errors = []
        for update in approval.updates:
            new_pct = update.new_percentage
            if update.member_id not in snapshots:
                errors.append(f"No {approval.fiscal_year} snapshot for member {update.member_id}")
            elif new_pct < 0:
                errors.append(f"Member {update.member_id} would have negative equity {new_pct}")
            elif new_pct > HUNDRED:
                errors.append(f"Member {update.member_id} would exceed 100% equity ({new_pct})")
        if errors:
            raise ValidationError(
                "Approval cannot be applied; no snapshot was changed",
                field="updates",
                details=errors,
            )

        for update in approval.updates:
            apply_update_to_snapshot(
                snapshots[update.member_id], approval.approval_type, update.new_percentage
            )

        from_status = self._transition(approval, BoardApprovalStatus.APPLIED)
        approval.applied_by = actor.actor_id
        approval.applied_at = utcnow()
        await self.session.flush()

        self._audit_transition(
            approval,
            from_status,
            actor.actor_id,
            {"updates": [u.to_canonical_dict() for u in approval.updates]},
        )
        self.emitter.emit(
            BoardApprovalApplied(
                metadata=EventMetadata.create(actor_id=actor.actor_id),
                approval_id=approval.approval_id,
                applied_by=actor.actor_id,
                snapshot_count=len(approval.updates),
            )
        )
        return approval

    async def revise(self, rejected_id: UUID, submitted_by: str) -> BoardApproval:
        """Start a fresh draft from a rejected approval, leaving it untouched."""
        rejected = await self.get_approval(rejected_id)
        if not BoardApprovalStateMachine.can_revise(rejected.status):
            raise InvalidTransitionError(
                rejected.status,
                BoardApprovalStatus.DRAFT,
                "only rejected approvals can be revised",
            )
        return await self.create_draft(
            fiscal_year=rejected.fiscal_year,
            approval_type=rejected.approval_type,
            title=rejected.title,
            updates=[
                ProposedUpdate(u.member_id, u.new_percentage, u.change_reason)
                for u in rejected.updates
            ],
            submitted_by=submitted_by,
            effective_date=rejected.effective_date,
            description=rejected.description,
            notes=rejected.notes,
            supersedes_id=rejected.approval_id,
        )

    async def propose_pro_rata_draft(
        self,
        fiscal_year: int,
        submitted_by: str,
        effective_date: date,
        exclude_member_ids: Collection[Hashable] = (),
        title: str | None = None,
    ) -> BoardApproval:
        """Draft a mid-year adjustment that brings active equity back to 100%."""
        current = await self.current_equity(fiscal_year)
        holdings = [
            EquityHolding(member_id=m.member_id, percentage=m.percentage)
            for m in current.values()
            if m.is_active
        ]
        unallocated = HUNDRED - sum((h.percentage for h in holdings), ZERO)
        if unallocated == 0:
            raise ValidationError(
                f"Active equity for {fiscal_year} already totals 100%", field="fiscal_year"
            )

        allocations = pro_rata_adjustment(holdings, unallocated, exclude_member_ids)
        reason = f"Pro-rata redistribution of {unallocated:.4f}% unallocated equity"
        updates = [
            ProposedUpdate(a.member_id, a.final_percentage, reason)
            for a in allocations
            if a.additional_allocation != 0
        ]
        return await self.create_draft(
            fiscal_year=fiscal_year,
            approval_type=ApprovalType.MID_YEAR_ADJUSTMENT.value,
            title=title or f"Pro-rata equity adjustment FY{fiscal_year}",
            updates=updates,
            submitted_by=submitted_by,
            effective_date=effective_date,
        )
