"""
fulfillment_engines.approval -- Pure approval rule evaluation engine.

Responsibility:
    Select the approval rules that apply to a purchase request and decide
    whether the collected per-level decisions clear, reject or leave the
    request pending.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Rule authoring is outside
    the core; the requisition service hands in an already-resolved rule set.

Invariants enforced:
    - A rule applies when it is active, its entity type and currency equal
      the request's, and amount_range_min <= amount <= amount_range_max
      (an open maximum is unbounded).
    - Applicable rules are returned ordered by level, then rule id.
    - A single rejection rejects the whole request.
    - A request is approved only when no decision is pending.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - Returns an empty tuple when no rule matches; the caller treats that
      as "no approval required".
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fulfillment_engines.tracer import traced_engine


class ApprovalDecisionStatus(str, Enum):
    """Status of one per-level approval record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalRuleSpec:
    """Resolved approval rule as consumed by the engine."""

    rule_id: UUID
    entity_type: str
    currency: str
    amount_range_min: Decimal
    level: int
    amount_range_max: Decimal | None = None
    approver_role: str | None = None
    specific_approver_id: UUID | None = None
    is_active: bool = True

    def applies_to(self, entity_type: str, currency: str, amount: Decimal) -> bool:
        if not self.is_active:
            return False
        if self.entity_type != entity_type:
            return False
        if self.currency.upper() != currency.upper():
            return False
        if amount < self.amount_range_min:
            return False
        if self.amount_range_max is not None and amount > self.amount_range_max:
            return False
        return True


@dataclass(frozen=True)
class ApprovalOutcome:
    """Aggregate state over all approval records of one request."""

    status: ApprovalDecisionStatus
    pending_levels: tuple[int, ...] = ()
    approved_count: int = 0

    @property
    def is_approved(self) -> bool:
        return self.status == ApprovalDecisionStatus.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.status == ApprovalDecisionStatus.REJECTED


@traced_engine(
    "approval_rules",
    "1.0",
    fingerprint_fields=("entity_type", "currency", "amount"),
)
def select_applicable_rules(
    *,
    rules: Iterable[ApprovalRuleSpec],
    entity_type: str,
    currency: str,
    amount: Decimal,
) -> tuple[ApprovalRuleSpec, ...]:
    """All rules that apply, ordered by level then rule id."""
    matched = [r for r in rules if r.applies_to(entity_type, currency, amount)]
    return tuple(sorted(matched, key=lambda r: (r.level, str(r.rule_id))))


def evaluate_approval_status(
    decisions: Sequence[tuple[int, ApprovalDecisionStatus]],
) -> ApprovalOutcome:
    """Aggregate ``(level, status)`` pairs into one outcome.

    An empty decision list is approved.
    """
    statuses = [(level, ApprovalDecisionStatus(status)) for level, status in decisions]
    if any(s == ApprovalDecisionStatus.REJECTED for _, s in statuses):
        return ApprovalOutcome(status=ApprovalDecisionStatus.REJECTED)

    pending = tuple(sorted({lvl for lvl, s in statuses if s == ApprovalDecisionStatus.PENDING}))
    approved = sum(1 for _, s in statuses if s == ApprovalDecisionStatus.APPROVED)
    if pending:
        return ApprovalOutcome(
            status=ApprovalDecisionStatus.PENDING,
            pending_levels=pending,
            approved_count=approved,
        )
    return ApprovalOutcome(
        status=ApprovalDecisionStatus.APPROVED,
        approved_count=approved,
    )
