"""
SQLAlchemy ORM persistence models for the Procurement module.

Responsibility
--------------
Persistence for purchase orders, goods receipts, vendor bills and
three-way match results.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProcurementService`` (and by
``RequisitionService`` when it converts a request into a purchase order).
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* PO and receipt status changes are validated against their workflows by
  the ``before_update`` listener; PO key fields are frozen from
  ``confirmed`` onward.
* ``MatchResultModel.po_id`` is unique: one evolving result per PO.
* Supplier and warehouse ids reference external registries (no FK).
* ``pr_id`` is a plain reference; the foreign key lives on the request side
  (``purchase_requests.converted_po_id``).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import TrackedBase

# Fields frozen once a PO is confirmed
PO_KEY_FIELDS = (
    "supplier_id",
    "order_date",
    "currency",
    "subtotal",
    "tax_amount",
    "total_amount",
)

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """A purchase order to a supplier."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_purchase_order_number"),
        Index("idx_po_supplier", "supplier_id"),
        Index("idx_po_status", "status"),
        Index("idx_po_pr", "pr_id"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    pr_id: Mapped[UUID | None]
    supplier_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        "PurchaseOrderItemModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderItemModel.line_number",
    )

    @property
    def ordered_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def unit_price_for(self, product_id: UUID) -> Decimal | None:
        for item in self.items:
            if item.product_id == product_id:
                return item.unit_price
        return None

    def to_dto(self):
        from fulfillment_modules.procurement.models import POStatus, PurchaseOrder

        return PurchaseOrder(
            id=self.id,
            order_number=self.order_number,
            pr_id=self.pr_id,
            supplier_id=self.supplier_id,
            status=POStatus(self.status),
            order_date=self.order_date,
            expected_delivery_date=self.expected_delivery_date,
            delivery_date=self.delivery_date,
            currency=self.currency,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            notes=self.notes,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.order_number} [{self.status}]>"


class PurchaseOrderItemModel(TrackedBase):
    """A line item on a purchase order."""

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        UniqueConstraint("po_id", "line_number", name="uq_po_line_number"),
        CheckConstraint("quantity > 0", name="ck_po_item_quantity_positive"),
        Index("idx_po_item_po", "po_id"),
    )

    po_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_products.id"), nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="items",
    )

    def to_dto(self):
        from fulfillment_modules.procurement.models import PurchaseOrderItem

        return PurchaseOrderItem(
            id=self.id,
            po_id=self.po_id,
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderItemModel #{self.line_number} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# GoodsReceiptModel
# ---------------------------------------------------------------------------


class GoodsReceiptModel(TrackedBase):
    """
    Physical receipt against a purchase order.

    Posting (``draft -> posted``) is one-way and materializes batches and
    stock movements.
    """

    __tablename__ = "goods_receipts"

    __table_args__ = (
        UniqueConstraint("gr_number", name="uq_goods_receipt_number"),
        Index("idx_gr_po", "po_id"),
        Index("idx_gr_status", "status"),
    )

    gr_number: Mapped[str] = mapped_column(String(50), nullable=False)
    po_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    warehouse_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    received_by: Mapped[UUID] = mapped_column(nullable=False)
    received_at: Mapped[datetime] = mapped_column(nullable=False)
    posted_at: Mapped[datetime | None]

    items: Mapped[list["GoodsReceiptItemModel"]] = relationship(
        "GoodsReceiptItemModel",
        back_populates="receipt",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GoodsReceiptItemModel.line_number",
    )

    def to_dto(self):
        from fulfillment_modules.procurement.models import GoodsReceipt, ReceiptStatus

        return GoodsReceipt(
            id=self.id,
            gr_number=self.gr_number,
            po_id=self.po_id,
            warehouse_id=self.warehouse_id,
            status=ReceiptStatus(self.status),
            received_by=self.received_by,
            received_at=self.received_at,
            posted_at=self.posted_at,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<GoodsReceiptModel {self.gr_number} [{self.status}]>"


class GoodsReceiptItemModel(TrackedBase):
    """A line on a goods receipt; ``batch_id`` is set when posted."""

    __tablename__ = "goods_receipt_items"

    __table_args__ = (
        UniqueConstraint("gr_id", "line_number", name="uq_gr_line_number"),
        CheckConstraint("quantity > 0", name="ck_gr_item_quantity_positive"),
        Index("idx_gr_item_gr", "gr_id"),
    )

    gr_id: Mapped[UUID] = mapped_column(
        ForeignKey("goods_receipts.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_products.id"), nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    batch_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inventory_batches.id"), nullable=True,
    )

    receipt: Mapped["GoodsReceiptModel"] = relationship(
        "GoodsReceiptModel",
        back_populates="items",
    )

    def to_dto(self):
        from fulfillment_modules.procurement.models import GoodsReceiptItem

        return GoodsReceiptItem(
            id=self.id,
            gr_id=self.gr_id,
            product_id=self.product_id,
            quantity=self.quantity,
            batch_number=self.batch_number,
            expiry_date=self.expiry_date,
            manufacture_date=self.manufacture_date,
            batch_id=self.batch_id,
        )

    def __repr__(self) -> str:
        return f"<GoodsReceiptItemModel #{self.line_number} {self.batch_number} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# VendorBillModel
# ---------------------------------------------------------------------------


class VendorBillModel(TrackedBase):
    """A supplier bill; independent of receipts until matched."""

    __tablename__ = "vendor_bills"

    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_vendor_bill_number"),
        Index("idx_bill_po", "po_id"),
        Index("idx_bill_supplier", "supplier_id"),
    )

    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    po_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True,
    )
    supplier_id: Mapped[UUID] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    bill_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from fulfillment_modules.procurement.models import BillStatus, VendorBill

        return VendorBill(
            id=self.id,
            bill_number=self.bill_number,
            po_id=self.po_id,
            supplier_id=self.supplier_id,
            total_amount=self.total_amount,
            currency=self.currency,
            status=BillStatus(self.status),
            bill_date=self.bill_date,
            due_date=self.due_date,
        )

    def __repr__(self) -> str:
        return f"<VendorBillModel {self.bill_number} {self.total_amount} {self.currency}>"


# ---------------------------------------------------------------------------
# MatchResultModel
# ---------------------------------------------------------------------------


class MatchResultModel(TrackedBase):
    """Evolving three-way match result; one row per purchase order."""

    __tablename__ = "three_way_match_results"

    __table_args__ = (
        UniqueConstraint("po_id", name="uq_match_result_po"),
        Index("idx_match_status", "status"),
    )

    po_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    gr_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("goods_receipts.id"), nullable=True,
    )
    bill_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("vendor_bills.id"), nullable=True,
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    quantity_variance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    price_variance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    match_details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    resolved_by: Mapped[UUID | None]
    resolved_at: Mapped[datetime | None]
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        from fulfillment_modules.procurement.models import MatchResult, MatchStatus

        return MatchResult(
            id=self.id,
            po_id=self.po_id,
            gr_id=self.gr_id,
            bill_id=self.bill_id,
            status=MatchStatus(self.status),
            quantity_variance=self.quantity_variance,
            price_variance=self.price_variance,
            match_details=dict(self.match_details or {}),
            resolved_by=self.resolved_by,
            resolved_at=self.resolved_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<MatchResultModel po={self.po_id} [{self.status}]>"
