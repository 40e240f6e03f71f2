"""
Inventory Module Service (``fulfillment_modules.inventory.service``).

Responsibility
--------------
Product registration, opening stock, manual corrections and the read-only
stock queries (on hand, sellable, expiring).

Architecture position
---------------------
**Modules layer** -- ``InventoryService`` is the public entry point for
inventory operations.  Ledger mutations go through ``BatchLedger``; reads
go through ``InventorySelector``.

Invariants enforced
-------------------
* Each mutating method owns the transaction boundary
  (``commit`` on success, ``rollback`` on any exception).
* Corrections never drive a batch negative and are allowed on expired
  batches.
* Read-only queries take no locks.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.exceptions import FulfillmentError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules.inventory.config import InventoryConfig
from fulfillment_modules.inventory.ledger import BatchLedger
from fulfillment_modules.inventory.models import Batch, Product, StockMovement
from fulfillment_modules.inventory.orm import ProductModel
from fulfillment_modules.inventory.selectors import InventorySelector

logger = get_logger("modules.inventory.service")


class InventoryService:
    """
    Inventory operations over one injected session.

    Usage::

        service = InventoryService(session, clock=clock)
        product = service.register_product("SKU-1", "Widget", actor_id=actor)
        batch, movement = service.receive_stock(
            product.id, warehouse_id, "LOT-1", 50, actor_id=actor,
            expiry_date=date(2025, 6, 1),
        )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig.with_defaults()
        self._ledger = BatchLedger(session, self._clock)
        self._selector = InventorySelector(session)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_product(
        self,
        sku: str,
        name: str,
        actor_id: UUID,
        unit_price: Decimal | None = None,
        shelf_life_days: int | None = None,
    ) -> Product:
        if not sku or not name:
            raise ValueError("Product sku and name are required")
        if shelf_life_days is not None and shelf_life_days <= 0:
            raise ValueError(f"shelf_life_days must be positive, got {shelf_life_days}")
        try:
            product = ProductModel(
                id=uuid4(),
                sku=sku,
                name=name,
                unit_price=unit_price,
                shelf_life_days=shelf_life_days,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(product)
            self._session.flush()
            self._session.commit()
            logger.info(
                "product_registered",
                extra={"product_id": str(product.id), "sku": sku},
            )
            return product.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def receive_stock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        batch_number: str,
        quantity: int,
        actor_id: UUID,
        expiry_date: date | None = None,
        manufacture_date: date | None = None,
        cost_per_unit: Decimal | None = None,
        reference: str = "OPENING",
    ) -> tuple[Batch, StockMovement]:
        """Book stock outside a goods receipt (opening balances, transfers in)."""
        try:
            batch, movement = self._ledger.receive(
                product_id=product_id,
                warehouse_id=warehouse_id,
                batch_number=batch_number,
                quantity=quantity,
                reference=reference,
                actor_id=actor_id,
                expiry_date=expiry_date,
                manufacture_date=manufacture_date,
                cost_per_unit=cost_per_unit,
            )
            self._session.flush()
            self._session.commit()
            return batch.to_dto(), movement.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def adjust_batch(
        self,
        batch_id: UUID,
        delta: int,
        reason: str,
        actor_id: UUID,
    ) -> tuple[Batch, StockMovement]:
        """Signed correction of one batch, recorded as an ``adjustment``."""
        with LogContext.bind(actor_id=actor_id, document_id=batch_id):
            logger.info(
                "batch_adjustment_started",
                extra={"batch_id": str(batch_id), "delta": delta, "reason": reason},
            )
            try:
                movement = self._ledger.adjust(batch_id, delta, reason, actor_id)
                self._session.flush()
                batch = self._ledger.lock_batch(batch_id)
                self._session.commit()
                logger.info(
                    "batch_adjustment_committed",
                    extra={"batch_id": str(batch_id), "quantity": batch.quantity},
                )
                return batch.to_dto(), movement.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "batch_adjustment_rejected",
                    extra={"batch_id": str(batch_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_product(self, product_id: UUID) -> Product | None:
        return self._selector.get_product(product_id)

    def get_batch(self, batch_id: UUID) -> Batch | None:
        return self._selector.get_batch(batch_id)

    def stock_on_hand(self, product_id: UUID, warehouse_id: UUID | None = None) -> int:
        return self._selector.stock_on_hand(product_id, warehouse_id)

    def sellable_quantity(self, product_id: UUID, warehouse_id: UUID) -> int:
        return self._selector.sellable_quantity(
            product_id, warehouse_id, self._clock.today(),
        )

    def batches(self, product_id: UUID, warehouse_id: UUID) -> list[Batch]:
        return self._selector.batches(product_id, warehouse_id)

    def expiring_batches(
        self,
        days_ahead: int | None = None,
        warehouse_id: UUID | None = None,
    ) -> list[Batch]:
        horizon = self._config.expiring_horizon_days if days_ahead is None else days_ahead
        return self._selector.expiring_batches(
            self._clock.today(), horizon, warehouse_id,
        )

    def movements_for_batch(self, batch_id: UUID) -> list[StockMovement]:
        return self._selector.movements_for_batch(batch_id)
