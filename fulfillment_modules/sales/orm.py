"""
SQLAlchemy ORM persistence models for the Sales module.

Responsibility
--------------
Persistence for sales orders, their items, and invoices / credit notes.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``SalesOrderService``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Status stored as String(20); every change is validated against
  ``SALES_ORDER_WORKFLOW`` by the ``before_update`` listener.
* ``SalesOrderItemModel`` belongs to exactly one ``SalesOrderModel``.
* ``returned_quantity`` never exceeds ``quantity``.
* Customer and warehouse ids reference external registries (no FK).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
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

# ---------------------------------------------------------------------------
# SalesOrderModel
# ---------------------------------------------------------------------------


class SalesOrderModel(TrackedBase):
    """
    A customer sales order.

    Maps to the ``SalesOrder`` DTO in ``fulfillment_modules.sales.models``.
    """

    __tablename__ = "sales_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_sales_order_number"),
        Index("idx_sales_order_customer", "customer_id"),
        Index("idx_sales_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    warehouse_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    items: Mapped[list["SalesOrderItemModel"]] = relationship(
        "SalesOrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SalesOrderItemModel.line_number",
    )

    def to_dto(self):
        from fulfillment_modules.sales.models import SalesOrder, SalesOrderStatus

        return SalesOrder(
            id=self.id,
            order_number=self.order_number,
            customer_id=self.customer_id,
            warehouse_id=self.warehouse_id,
            status=SalesOrderStatus(self.status),
            order_date=self.order_date,
            delivery_date=self.delivery_date,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            notes=self.notes,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<SalesOrderModel {self.order_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# SalesOrderItemModel
# ---------------------------------------------------------------------------


class SalesOrderItemModel(TrackedBase):
    """A line item on a sales order."""

    __tablename__ = "sales_order_items"

    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_sales_order_line_number"),
        CheckConstraint("quantity > 0", name="ck_sales_item_quantity_positive"),
        CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_sales_item_returned_quantity",
        ),
        Index("idx_sales_item_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_orders.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_products.id"), nullable=False,
    )
    batch_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("inventory_batches.id"), nullable=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    returned_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    order: Mapped["SalesOrderModel"] = relationship(
        "SalesOrderModel",
        back_populates="items",
    )

    def to_dto(self):
        from fulfillment_modules.sales.models import SalesOrderItem

        return SalesOrderItem(
            id=self.id,
            order_id=self.order_id,
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            returned_quantity=self.returned_quantity or 0,
            batch_id=self.batch_id,
        )

    def __repr__(self) -> str:
        return f"<SalesOrderItemModel #{self.line_number} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    Customer invoice or credit note.

    Credit notes (``is_credit_note``) carry negative amounts.  At most one
    non-cancelled, non-credit invoice exists per sales order (enforced by
    ``SalesOrderService.generate_invoice`` under the order row lock).
    """

    __tablename__ = "sales_invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        Index("idx_invoice_sales_order", "sales_order_id"),
        Index("idx_invoice_customer", "customer_id"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[UUID] = mapped_column(nullable=False)
    sales_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("sales_orders.id"), nullable=False,
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    is_credit_note: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        from fulfillment_modules.sales.models import Invoice, InvoiceStatus

        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            customer_id=self.customer_id,
            sales_order_id=self.sales_order_id,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            status=InvoiceStatus(self.status),
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            is_credit_note=self.is_credit_note,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        kind = "CN" if self.is_credit_note else "INV"
        return f"<InvoiceModel {kind} {self.invoice_number} {self.total_amount}>"
