"""
SQLAlchemy ORM persistence models for the Requisitions module.

Responsibility
--------------
Persistence for purchase requests, their lines, approval rules and the
per-level approval records.

Invariants enforced
-------------------
* Monetary fields are ``Decimal`` (Numeric(38,9)).
* PR status changes are validated against ``PURCHASE_REQUEST_WORKFLOW`` by
  the ``before_update`` listener.
* ``converted_po_id`` references the purchase order created on conversion.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import TrackedBase


class PurchaseRequestModel(TrackedBase):
    """An internal purchase request."""

    __tablename__ = "purchase_requests"

    __table_args__ = (
        UniqueConstraint("pr_number", name="uq_purchase_request_number"),
        Index("idx_pr_status", "status"),
        Index("idx_pr_requester", "requester_id"),
    )

    pr_number: Mapped[str] = mapped_column(String(50), nullable=False)
    requester_id: Mapped[UUID] = mapped_column(nullable=False)
    supplier_id: Mapped[UUID | None]
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    submitted_at: Mapped[datetime | None]
    approved_at: Mapped[datetime | None]
    converted_po_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True,
    )

    items: Mapped[list["PurchaseRequestItemModel"]] = relationship(
        "PurchaseRequestItemModel",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseRequestItemModel.line_number",
    )

    def to_dto(self):
        from fulfillment_modules.requisitions.models import (
            PurchaseRequest,
            PurchaseRequestStatus,
        )

        return PurchaseRequest(
            id=self.id,
            pr_number=self.pr_number,
            requester_id=self.requester_id,
            supplier_id=self.supplier_id,
            status=PurchaseRequestStatus(self.status),
            currency=self.currency,
            total_amount=self.total_amount,
            notes=self.notes,
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            converted_po_id=self.converted_po_id,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<PurchaseRequestModel {self.pr_number} [{self.status}]>"


class PurchaseRequestItemModel(TrackedBase):
    """A line on a purchase request."""

    __tablename__ = "purchase_request_items"

    __table_args__ = (
        UniqueConstraint("pr_id", "line_number", name="uq_pr_line_number"),
        CheckConstraint("quantity > 0", name="ck_pr_item_quantity_positive"),
        Index("idx_pr_item_pr", "pr_id"),
    )

    pr_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_requests.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_products.id"), nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    request: Mapped["PurchaseRequestModel"] = relationship(
        "PurchaseRequestModel",
        back_populates="items",
    )

    def to_dto(self):
        from fulfillment_modules.requisitions.models import PurchaseRequestItem

        return PurchaseRequestItem(
            id=self.id,
            pr_id=self.pr_id,
            product_id=self.product_id,
            quantity=self.quantity,
            estimated_unit_price=self.estimated_unit_price,
            total_price=self.total_price,
        )


class ApprovalRuleModel(TrackedBase):
    """Amount-band approval rule; authored outside the core."""

    __tablename__ = "approval_rules"

    __table_args__ = (
        CheckConstraint("level >= 1", name="ck_approval_rule_level_positive"),
        CheckConstraint("amount_range_min >= 0", name="ck_approval_rule_min_non_negative"),
        Index("idx_approval_rule_lookup", "entity_type", "currency", "is_active"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_range_min: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    amount_range_max: Mapped[Decimal | None]
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    specific_approver_id: Mapped[UUID | None]
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_spec(self):
        from fulfillment_engines.approval import ApprovalRuleSpec

        return ApprovalRuleSpec(
            rule_id=self.id,
            entity_type=self.entity_type,
            currency=self.currency,
            amount_range_min=self.amount_range_min,
            amount_range_max=self.amount_range_max,
            level=self.level,
            approver_role=self.approver_role,
            specific_approver_id=self.specific_approver_id,
            is_active=self.is_active,
        )

    def to_dto(self):
        from fulfillment_modules.requisitions.models import ApprovalRule

        return ApprovalRule(
            id=self.id,
            entity_type=self.entity_type,
            currency=self.currency,
            amount_range_min=self.amount_range_min,
            amount_range_max=self.amount_range_max,
            level=self.level,
            approver_role=self.approver_role,
            specific_approver_id=self.specific_approver_id,
            is_active=self.is_active,
        )


class PurchaseRequestApprovalModel(TrackedBase):
    """One approval slot of a submitted purchase request."""

    __tablename__ = "purchase_request_approvals"

    __table_args__ = (
        Index("idx_pr_approval_pr_level", "pr_id", "level"),
    )

    pr_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_requests.id"), nullable=False,
    )
    rule_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("approval_rules.id"), nullable=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    approver_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approver_id: Mapped[UUID | None]
    decided_by: Mapped[UUID | None]
    decided_at: Mapped[datetime | None]
    comment: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        from fulfillment_modules.requisitions.models import Approval, ApprovalStatus

        return Approval(
            id=self.id,
            pr_id=self.pr_id,
            rule_id=self.rule_id,
            level=self.level,
            status=ApprovalStatus(self.status),
            approver_role=self.approver_role,
            approver_id=self.approver_id,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
            comment=self.comment,
        )

    def __repr__(self) -> str:
        return f"<PurchaseRequestApprovalModel level={self.level} [{self.status}]>"
