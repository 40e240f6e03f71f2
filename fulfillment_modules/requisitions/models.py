"""
Requisition Domain Models.

Purchase requests, the approval rules that gate them and the per-level
approval records created on submission.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fulfillment_engines.approval import ApprovalDecisionStatus
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.requisitions.models")

ApprovalStatus = ApprovalDecisionStatus


class PurchaseRequestStatus(Enum):
    """Purchase request lifecycle states."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PurchaseRequestLine:
    """Requested line when creating a purchase request."""
    product_id: UUID
    quantity: int
    estimated_unit_price: Decimal

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError(f"Line quantity must be a positive integer, got {self.quantity!r}")
        if self.estimated_unit_price < 0:
            raise ValueError(
                f"Estimated unit price cannot be negative: {self.estimated_unit_price}"
            )


@dataclass(frozen=True)
class PurchaseRequestItem:
    """A line on a purchase request."""
    id: UUID
    pr_id: UUID
    product_id: UUID
    quantity: int
    estimated_unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PurchaseRequest:
    """An internal request to buy goods, subject to approval."""
    id: UUID
    pr_number: str
    requester_id: UUID
    status: PurchaseRequestStatus
    currency: str
    total_amount: Decimal
    supplier_id: UUID | None = None
    notes: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    converted_po_id: UUID | None = None
    items: tuple[PurchaseRequestItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ApprovalRule:
    """Amount-band rule requiring an approval at ``level``."""
    id: UUID
    entity_type: str
    currency: str
    amount_range_min: Decimal
    level: int
    amount_range_max: Decimal | None = None
    approver_role: str | None = None
    specific_approver_id: UUID | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Approval:
    """One pending or decided approval of a purchase request."""
    id: UUID
    pr_id: UUID
    rule_id: UUID | None
    level: int
    status: ApprovalDecisionStatus
    approver_role: str | None = None
    approver_id: UUID | None = None
    decided_by: UUID | None = None
    decided_at: datetime | None = None
    comment: str | None = None
