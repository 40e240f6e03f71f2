"""
Inventory read queries (``fulfillment_modules.inventory.selectors``).

Read-only: no locks, no writes.  Every method returns DTOs or plain values.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select

from fulfillment_engines.allocation import fefo_sort_key
from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_modules.inventory.models import Batch, Product, StockMovement
from fulfillment_modules.inventory.orm import (
    BatchModel,
    ProductModel,
    StockMovementModel,
)


class InventorySelector(BaseSelector):
    """Stock levels, batch listings and movement history."""

    def get_product(self, product_id: UUID) -> Product | None:
        product = self.session.get(ProductModel, product_id, populate_existing=True)
        return product.to_dto() if product else None

    def get_batch(self, batch_id: UUID) -> Batch | None:
        batch = self.session.get(BatchModel, batch_id, populate_existing=True)
        return batch.to_dto() if batch else None

    def stock_on_hand(self, product_id: UUID, warehouse_id: UUID | None = None) -> int:
        """Total quantity, expired batches included."""
        stmt = select(func.coalesce(func.sum(BatchModel.quantity), 0)).where(
            BatchModel.product_id == product_id,
        )
        if warehouse_id is not None:
            stmt = stmt.where(BatchModel.warehouse_id == warehouse_id)
        return int(self.session.scalar(stmt))

    def sellable_quantity(self, product_id: UUID, warehouse_id: UUID, as_of: date) -> int:
        """Quantity in batches that are not expired on ``as_of``."""
        stmt = select(func.coalesce(func.sum(BatchModel.quantity), 0)).where(
            BatchModel.product_id == product_id,
            BatchModel.warehouse_id == warehouse_id,
            BatchModel.quantity > 0,
            or_(BatchModel.expiry_date.is_(None), BatchModel.expiry_date >= as_of),
        )
        return int(self.session.scalar(stmt))

    def batches(self, product_id: UUID, warehouse_id: UUID) -> list[Batch]:
        """All batches of a product in a warehouse, FEFO ordered."""
        stmt = select(BatchModel).where(
            BatchModel.product_id == product_id,
            BatchModel.warehouse_id == warehouse_id,
        ).execution_options(populate_existing=True)
        rows = sorted(
            self.session.scalars(stmt),
            key=lambda b: fefo_sort_key(b.to_candidate()),
        )
        return [b.to_dto() for b in rows]

    def expiring_batches(
        self,
        as_of: date,
        days_ahead: int,
        warehouse_id: UUID | None = None,
    ) -> list[Batch]:
        """
        Batches with stock expiring between ``as_of`` and ``as_of + days_ahead``.

        Ordered by expiry date (FEFO order).
        """
        if days_ahead < 0:
            raise ValueError(f"days_ahead cannot be negative: {days_ahead}")
        horizon = as_of + timedelta(days=days_ahead)
        stmt = select(BatchModel).where(
            BatchModel.quantity > 0,
            BatchModel.expiry_date.is_not(None),
            BatchModel.expiry_date >= as_of,
            BatchModel.expiry_date <= horizon,
        ).execution_options(populate_existing=True)
        if warehouse_id is not None:
            stmt = stmt.where(BatchModel.warehouse_id == warehouse_id)
        rows = sorted(
            self.session.scalars(stmt),
            key=lambda b: fefo_sort_key(b.to_candidate()),
        )
        return [b.to_dto() for b in rows]

    def movements_for_batch(self, batch_id: UUID) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(StockMovementModel.batch_id == batch_id)
            .order_by(StockMovementModel.occurred_at, StockMovementModel.id)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def movements_for_reference(self, reference: str) -> list[StockMovement]:
        stmt = (
            select(StockMovementModel)
            .where(StockMovementModel.reference == reference)
            .order_by(StockMovementModel.occurred_at, StockMovementModel.id)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]
