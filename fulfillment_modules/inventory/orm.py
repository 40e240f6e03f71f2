"""
SQLAlchemy ORM persistence models for the Inventory module.

Responsibility
--------------
Persistence for products, stock batches (the batch ledger) and the
append-only stock movement audit trail.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``BatchLedger`` and the
inventory, sales and procurement services.  Inherits from ``TrackedBase``.

Invariants enforced
-------------------
* ``BatchModel.quantity`` is never negative: ``@validates`` rejects it in
  Python and ``ck_batch_quantity_non_negative`` rejects it in the database.
* (product_id, warehouse_id, batch_number) is unique.
* ``StockMovementModel`` rows are never updated or deleted
  (``fulfillment_kernel.db.immutability``).
* Batches are never deleted; quantity may reach zero.
* Warehouse ids are references into an external registry (no FK).
"""

from datetime import date, datetime
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
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from fulfillment_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# ProductModel
# ---------------------------------------------------------------------------


class ProductModel(TrackedBase):
    """
    A product (SKU).

    ``shelf_life_days`` sets the expiry of batches created by returns.
    """

    __tablename__ = "inventory_products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
    )

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal | None]
    shelf_life_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self):
        from fulfillment_modules.inventory.models import Product

        return Product(
            id=self.id,
            sku=self.sku,
            name=self.name,
            unit_price=self.unit_price,
            shelf_life_days=self.shelf_life_days,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<ProductModel {self.sku}>"


# ---------------------------------------------------------------------------
# BatchModel
# ---------------------------------------------------------------------------


class BatchModel(TrackedBase):
    """
    One row of the batch ledger.

    Mutated only through ``BatchLedger`` (consume / receive / adjust), each
    mutation paired with a ``StockMovementModel`` in the same transaction.
    """

    __tablename__ = "inventory_batches"

    __table_args__ = (
        UniqueConstraint(
            "product_id", "warehouse_id", "batch_number",
            name="uq_batch_product_warehouse_number",
        ),
        CheckConstraint("quantity >= 0", name="ck_batch_quantity_non_negative"),
        Index("idx_batch_product_warehouse", "product_id", "warehouse_id"),
        Index("idx_batch_expiry", "expiry_date"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_products.id"), nullable=False,
    )
    warehouse_id: Mapped[UUID] = mapped_column(nullable=False)
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cost_per_unit: Mapped[Decimal | None]

    product: Mapped["ProductModel"] = relationship("ProductModel", lazy="selectin")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"Batch quantity cannot be negative: {value}")
        return value

    def to_dto(self):
        from fulfillment_modules.inventory.models import Batch

        return Batch(
            id=self.id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            batch_number=self.batch_number,
            quantity=self.quantity,
            manufacture_date=self.manufacture_date,
            expiry_date=self.expiry_date,
            cost_per_unit=self.cost_per_unit,
        )

    def to_candidate(self):
        from fulfillment_engines.allocation import BatchCandidate

        return BatchCandidate(
            batch_id=self.id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            batch_number=self.batch_number,
            quantity=self.quantity,
            expiry_date=self.expiry_date,
        )

    def __repr__(self) -> str:
        return f"<BatchModel {self.batch_number} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# StockMovementModel
# ---------------------------------------------------------------------------


class StockMovementModel(TrackedBase):
    """
    Immutable, append-only audit record of one ledger delta.

    ``quantity`` is signed: negative for outbound allocations, positive for
    receipts and returns, either sign for adjustments.
    """

    __tablename__ = "inventory_stock_movements"

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_movement_quantity_non_zero"),
        Index("idx_movement_batch", "batch_id"),
        Index("idx_movement_product_warehouse", "product_id", "warehouse_id"),
        Index("idx_movement_reference", "reference"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_products.id"), nullable=False,
    )
    warehouse_id: Mapped[UUID] = mapped_column(nullable=False)
    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_batches.id"), nullable=False,
    )
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    actor_id: Mapped[UUID | None]
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self):
        from fulfillment_modules.inventory.models import MovementType, StockMovement

        return StockMovement(
            id=self.id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            batch_id=self.batch_id,
            movement_type=MovementType(self.movement_type),
            quantity=self.quantity,
            reference=self.reference,
            notes=self.notes,
            actor_id=self.actor_id,
            created_at=self.occurred_at,
        )

    def __repr__(self) -> str:
        return f"<StockMovementModel {self.movement_type} {self.quantity:+d} batch={self.batch_id}>"
