"""
Batch Ledger (``fulfillment_modules.inventory.ledger``).

Responsibility
--------------
The only code path that changes ``BatchModel.quantity``.  Every mutation
re-reads the batch row under a row lock, applies the delta, and appends the
matching ``StockMovementModel`` to the same session, so a ledger delta
without a movement (or the reverse) cannot be committed.

Architecture position
---------------------
**Modules layer** -- shared by the inventory, sales and procurement
services.  The ledger never commits; the calling service owns the
transaction.

Invariants enforced
-------------------
* Quantity never goes negative (``InsufficientStockError`` before the write,
  ORM validator and DB check constraint behind it).
* Multi-row locks are taken in ascending id order to avoid deadlocks.
* One movement per mutation, signed to match the delta.

Failure modes
-------------
* ``NotFoundError`` -- batch id does not exist.
* ``InsufficientStockError`` -- consume or negative adjustment exceeds the
  current quantity.
* ``ValueError`` -- non-positive consume/receive quantity or zero adjustment.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.actors import SYSTEM_ACTOR_ID
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.exceptions import InsufficientStockError, NotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_modules.inventory.models import MovementType
from fulfillment_modules.inventory.orm import BatchModel, StockMovementModel

logger = get_logger("modules.inventory.ledger")


def _require_positive(quantity: int, what: str) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"{what} quantity must be a positive integer, got {quantity!r}")


class BatchLedger:
    """
    Row-locked mutations of the batch ledger.

    Contract
    --------
    * ``consume`` / ``adjust`` re-read the persisted row with
      ``SELECT ... FOR UPDATE`` immediately before changing it.
    * ``receive`` inserts a new batch or increments the batch keyed by
      (product, warehouse, batch number).
    * Nothing is committed here.
    """

    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    # ------------------------------------------------------------------
    # Locking reads
    # ------------------------------------------------------------------

    def lock_batch(self, batch_id: UUID) -> BatchModel:
        batch = self._session.get(
            BatchModel,
            batch_id,
            with_for_update=True,
            populate_existing=True,
        )
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    def lock_candidates(
        self,
        product_ids: Iterable[UUID],
        warehouse_id: UUID,
    ) -> list[BatchModel]:
        """Lock every batch of the given products in one warehouse, by id."""
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return []
        stmt = (
            select(BatchModel)
            .where(
                BatchModel.product_id.in_(ids),
                BatchModel.warehouse_id == warehouse_id,
            )
            .order_by(BatchModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(self._session.scalars(stmt))

    def lock_by_keys(
        self,
        keys: Iterable[tuple[UUID, UUID, str]],
    ) -> dict[tuple[UUID, UUID, str], BatchModel]:
        """Lock existing batches addressed by (product, warehouse, number)."""
        wanted = set(keys)
        if not wanted:
            return {}
        stmt = (
            select(BatchModel)
            .where(
                or_(
                    *(
                        and_(
                            BatchModel.product_id == p,
                            BatchModel.warehouse_id == w,
                            BatchModel.batch_number == n,
                        )
                        for p, w, n in sorted(wanted, key=str)
                    )
                )
            )
            .order_by(BatchModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        found = {}
        for batch in self._session.scalars(stmt):
            found[(batch.product_id, batch.warehouse_id, batch.batch_number)] = batch
        return found

    def candidates(
        self,
        product_ids: Iterable[UUID],
        warehouse_id: UUID,
    ) -> list[BatchModel]:
        """Unlocked read of the products' batches in one warehouse."""
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return []
        stmt = (
            select(BatchModel)
            .where(
                BatchModel.product_id.in_(ids),
                BatchModel.warehouse_id == warehouse_id,
            )
            .order_by(BatchModel.id)
            .execution_options(populate_existing=True)
        )
        return list(self._session.scalars(stmt))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def consume(
        self,
        batch_id: UUID,
        quantity: int,
        reference: str,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> StockMovementModel:
        """Decrement a batch and record an ``out`` movement."""
        _require_positive(quantity, "Consume")
        batch = self.lock_batch(batch_id)
        if quantity > batch.quantity:
            logger.warning(
                "batch_consume_insufficient",
                extra={
                    "batch_id": str(batch_id),
                    "required": quantity,
                    "available": batch.quantity,
                },
            )
            raise InsufficientStockError(
                required=quantity,
                available=batch.quantity,
                product_id=batch.product_id,
                warehouse_id=batch.warehouse_id,
                batch_id=batch.id,
            )
        batch.quantity -= quantity
        batch.updated_by_id = actor_id
        return self._record(
            batch,
            MovementType.OUT,
            -quantity,
            reference,
            notes or f"Allocated from batch {batch.batch_number}",
            actor_id,
        )

    def receive(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        batch_number: str,
        quantity: int,
        reference: str,
        actor_id: UUID,
        expiry_date: date | None = None,
        manufacture_date: date | None = None,
        cost_per_unit: Decimal | None = None,
        notes: str | None = None,
        existing: BatchModel | None = None,
    ) -> tuple[BatchModel, StockMovementModel]:
        """
        Insert or increment a batch and record an ``in`` movement.

        ``existing`` may carry a batch the caller already locked via
        ``lock_by_keys``; otherwise the key is looked up under lock here.
        """
        _require_positive(quantity, "Receive")
        batch = existing
        if batch is None:
            batch = self.lock_by_keys([(product_id, warehouse_id, batch_number)]).get(
                (product_id, warehouse_id, batch_number)
            )

        if batch is None:
            batch = BatchModel(
                id=uuid4(),
                product_id=product_id,
                warehouse_id=warehouse_id,
                batch_number=batch_number,
                quantity=quantity,
                manufacture_date=manufacture_date,
                expiry_date=expiry_date,
                cost_per_unit=cost_per_unit,
                created_by_id=actor_id,
            )
            self._session.add(batch)
            created = True
        else:
            batch.quantity += quantity
            if batch.expiry_date is None and expiry_date is not None:
                batch.expiry_date = expiry_date
            if batch.cost_per_unit is None and cost_per_unit is not None:
                batch.cost_per_unit = cost_per_unit
            batch.updated_by_id = actor_id
            created = False

        logger.info(
            "batch_received",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch_number,
                "quantity": quantity,
                "new_batch": created,
                "reference": reference,
            },
        )
        movement = self._record(
            batch,
            MovementType.IN,
            quantity,
            reference,
            notes or f"Received into batch {batch_number}",
            actor_id,
        )
        return batch, movement

    def adjust(
        self,
        batch_id: UUID,
        delta: int,
        reason: str,
        actor_id: UUID,
        reference: str | None = None,
    ) -> StockMovementModel:
        """Apply a signed correction; allowed on expired batches."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValueError(f"Adjustment must be a non-zero integer, got {delta!r}")
        batch = self.lock_batch(batch_id)
        if batch.quantity + delta < 0:
            raise InsufficientStockError(
                required=-delta,
                available=batch.quantity,
                product_id=batch.product_id,
                warehouse_id=batch.warehouse_id,
                batch_id=batch.id,
            )
        batch.quantity += delta
        batch.updated_by_id = actor_id
        return self._record(
            batch,
            MovementType.ADJUSTMENT,
            delta,
            reference or f"ADJ-{batch.batch_number}",
            reason,
            actor_id,
        )

    # ------------------------------------------------------------------

    def _record(
        self,
        batch: BatchModel,
        movement_type: MovementType,
        quantity: int,
        reference: str | None,
        notes: str | None,
        actor_id: UUID | None,
    ) -> StockMovementModel:
        movement = StockMovementModel(
            id=uuid4(),
            product_id=batch.product_id,
            warehouse_id=batch.warehouse_id,
            batch_id=batch.id,
            movement_type=movement_type.value,
            quantity=quantity,
            reference=reference,
            notes=notes,
            actor_id=actor_id,
            occurred_at=self._clock.now_utc(),
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )
        self._session.add(movement)
        logger.debug(
            "stock_movement_recorded",
            extra={
                "batch_id": str(batch.id),
                "movement_type": movement_type.value,
                "quantity": quantity,
                "reference": reference,
            },
        )
        return movement
