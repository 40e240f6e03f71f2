"""
Sales Module Service (``fulfillment_modules.sales.service``).

Responsibility
--------------
Moves sales orders through their lifecycle -- create, confirm (allocation
check), fulfill (stock consumption), invoice, return, cancel -- delegating
batch selection to ``AllocationEngine`` and every ledger change to
``BatchLedger``.

Architecture position
---------------------
**Modules layer** -- ``SalesOrderService`` is the sole public entry point for
sales operations.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on success,
  ``rollback`` on any exception, which is re-raised).
* The order row is re-read with ``SELECT ... FOR UPDATE`` before its status
  is validated.
* ``fulfill`` locks candidate batches in id order and re-runs allocation
  inside the transaction; if allocation fails, no movement is written.
* Every status change is validated by ``SALES_ORDER_WORKFLOW``.
* At most one (non-credit, non-cancelled) invoice per order.
* Return quantity never exceeds ``quantity - returned_quantity``.

Failure modes
-------------
* ``NotFoundError``, ``InvalidStateTransitionError``,
  ``InsufficientStockError``, ``ExpiredBatchError``,
  ``AlreadyInvoicedError``, ``ReturnQuantityExceededError``.
* ``ValueError`` on empty line lists or non-positive quantities.

Usage::

    service = SalesOrderService(session, clock=clock)
    order = service.create_order(customer_id, warehouse_id, lines, actor_id)
    order, allocations = service.confirm(order.id)
    order, movements = service.fulfill(order.id, warehouse_id)
    invoice = service.generate_invoice(order.id)
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_engines.allocation import AllocationEngine, AllocationRequest
from fulfillment_kernel.domain.actors import SYSTEM_ACTOR_ID
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import (
    CREDIT_NOTE,
    INVOICE,
    RETURN_BATCH,
    SALES_ORDER,
    document_number,
)
from fulfillment_kernel.exceptions import (
    AlreadyInvoicedError,
    FulfillmentError,
    NotFoundError,
    ReturnQuantityExceededError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules.inventory.ledger import BatchLedger
from fulfillment_modules.inventory.models import StockMovement
from fulfillment_modules.inventory.orm import ProductModel
from fulfillment_modules.sales.config import SalesConfig
from fulfillment_modules.sales.models import (
    Allocation,
    Invoice,
    ReturnLine,
    SalesOrder,
    SalesOrderLine,
)
from fulfillment_modules.sales.orm import (
    InvoiceModel,
    SalesOrderItemModel,
    SalesOrderModel,
)
from fulfillment_modules.sales.workflows import (
    INVOICEABLE_STATES,
    RETURNABLE_STATES,
    SALES_ORDER_WORKFLOW,
)

logger = get_logger("modules.sales.service")

_CENT = Decimal("0.01")


class SalesOrderService:
    """
    Orchestrates the sales order lifecycle.

    Contract
    --------
    * Every method returns frozen DTOs, never live ORM rows.
    * Clock, config and allocator are injectable for deterministic tests.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: SalesConfig | None = None,
        allocator: AllocationEngine | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or SalesConfig.with_defaults()
        self._allocator = allocator or AllocationEngine()
        self._ledger = BatchLedger(session, self._clock)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_order(
        self,
        customer_id: UUID,
        warehouse_id: UUID,
        lines: Sequence[SalesOrderLine],
        actor_id: UUID,
        tax_amount: Decimal = Decimal("0"),
        notes: str | None = None,
    ) -> SalesOrder:
        """Create a ``draft`` order; totals are computed from the lines."""
        if not lines:
            raise ValueError("A sales order needs at least one line")
        if tax_amount < 0:
            raise ValueError(f"Tax amount cannot be negative: {tax_amount}")

        try:
            today = self._clock.today()
            order = SalesOrderModel(
                id=uuid4(),
                order_number=document_number(SALES_ORDER, today),
                customer_id=customer_id,
                warehouse_id=warehouse_id,
                status=SALES_ORDER_WORKFLOW.initial_state,
                order_date=today,
                tax_amount=tax_amount,
                notes=notes,
                created_by_id=actor_id,
            )
            subtotal = Decimal("0")
            for idx, line in enumerate(lines, start=1):
                product = self._session.get(ProductModel, line.product_id)
                if product is None:
                    raise NotFoundError("Product", line.product_id)
                if not product.is_active:
                    raise ValueError(f"Product {product.sku} is inactive")
                unit_price = line.unit_price if line.unit_price is not None else product.unit_price
                if unit_price is None:
                    raise ValueError(f"Product {product.sku} has no price")
                total_price = unit_price * line.quantity
                subtotal += total_price
                order.items.append(
                    SalesOrderItemModel(
                        id=uuid4(),
                        line_number=idx,
                        product_id=line.product_id,
                        batch_id=line.batch_id,
                        quantity=line.quantity,
                        unit_price=unit_price,
                        total_price=total_price,
                        returned_quantity=0,
                        created_by_id=actor_id,
                    )
                )
            order.subtotal = subtotal
            order.total_amount = subtotal + tax_amount
            self._session.add(order)
            self._session.flush()
            self._session.commit()
            logger.info(
                "sales_order_created",
                extra={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "line_count": len(lines),
                    "total_amount": str(order.total_amount),
                },
            )
            return order.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def confirm(
        self,
        order_id: UUID,
        actor_id: UUID | None = None,
    ) -> tuple[SalesOrder, list[Allocation]]:
        """
        ``draft -> confirmed`` after checking every line can be allocated.

        Returns the allocation plan; no stock moves.
        """
        with LogContext.bind(document_id=order_id, actor_id=actor_id):
            logger.info("sales_order_confirm_started", extra={"order_id": str(order_id)})
            try:
                order = self._lock_order(order_id)
                SALES_ORDER_WORKFLOW.require_transition(order.status, "confirmed", order.id)

                allocations = self._plan(order, order.warehouse_id, lock=False)

                order.status = "confirmed"
                order.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "sales_order_confirm_committed",
                    extra={
                        "order_id": str(order.id),
                        "order_number": order.order_number,
                        "allocation_count": len(allocations),
                    },
                )
                return order.to_dto(), allocations
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "sales_order_confirm_rejected",
                    extra={"order_id": str(order_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def fulfill(
        self,
        order_id: UUID,
        warehouse_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[SalesOrder, list[StockMovement]]:
        """
        ``confirmed -> shipped``: consume allocated batches.

        Candidate batches are locked and allocation re-runs against the
        current quantities; stock that vanished since ``confirm`` fails the
        whole operation with nothing written.
        """
        with LogContext.bind(document_id=order_id, actor_id=actor_id):
            logger.info("sales_order_fulfill_started", extra={"order_id": str(order_id)})
            try:
                order = self._lock_order(order_id)
                SALES_ORDER_WORKFLOW.require_transition(order.status, "shipped", order.id)
                source_warehouse = warehouse_id or order.warehouse_id

                allocations = self._plan(order, source_warehouse, lock=True)
                movements = []
                for allocation in allocations:
                    movement = self._ledger.consume(
                        allocation.batch_id,
                        allocation.quantity,
                        reference=order.order_number,
                        actor_id=actor_id,
                        notes=(
                            f"Allocated from batch {allocation.batch_number} "
                            f"for {order.order_number}"
                        ),
                    )
                    movements.append(movement)

                order.status = "shipped"
                order.delivery_date = self._clock.today()
                order.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "sales_order_fulfill_committed",
                    extra={
                        "order_id": str(order.id),
                        "order_number": order.order_number,
                        "movement_count": len(movements),
                        "warehouse_id": str(source_warehouse),
                    },
                )
                return order.to_dto(), [m.to_dto() for m in movements]
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "sales_order_fulfill_rejected",
                    extra={"order_id": str(order_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def generate_invoice(
        self,
        order_id: UUID,
        actor_id: UUID | None = None,
    ) -> Invoice:
        """Invoice a shipped (or delivered) order; ``shipped -> delivered``."""
        with LogContext.bind(document_id=order_id, actor_id=actor_id):
            try:
                order = self._lock_order(order_id)
                SALES_ORDER_WORKFLOW.require_state(
                    order.status, INVOICEABLE_STATES, "delivered", order.id,
                )
                existing = self._session.scalars(
                    select(InvoiceModel).where(
                        InvoiceModel.sales_order_id == order.id,
                        InvoiceModel.is_credit_note.is_(False),
                        InvoiceModel.status != "cancelled",
                    )
                ).first()
                if existing is not None:
                    raise AlreadyInvoicedError(order.id, existing.id)

                today = self._clock.today()
                invoice = InvoiceModel(
                    id=uuid4(),
                    invoice_number=document_number(INVOICE, today),
                    customer_id=order.customer_id,
                    sales_order_id=order.id,
                    invoice_date=today,
                    due_date=today + timedelta(days=self._config.invoice_payment_terms_days),
                    status="draft",
                    is_credit_note=False,
                    subtotal=order.subtotal,
                    tax_amount=order.tax_amount,
                    total_amount=order.total_amount,
                    notes=f"Invoice for {order.order_number}",
                    created_by_id=actor_id or SYSTEM_ACTOR_ID,
                )
                self._session.add(invoice)
                if order.status == "shipped":
                    order.status = "delivered"
                    order.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "sales_invoice_generated",
                    extra={
                        "order_id": str(order.id),
                        "invoice_number": invoice.invoice_number,
                        "total_amount": str(invoice.total_amount),
                    },
                )
                return invoice.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "sales_invoice_rejected",
                    extra={"order_id": str(order_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def process_return(
        self,
        order_id: UUID,
        items: Sequence[ReturnLine],
        warehouse_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[Invoice, list[StockMovement]]:
        """
        Take returned goods back into a fresh ``RET-`` batch per product and
        issue a negative-amount credit note for their value.
        """
        if not items:
            raise ValueError("A return needs at least one line")

        with LogContext.bind(document_id=order_id, actor_id=actor_id):
            logger.info(
                "sales_return_started",
                extra={"order_id": str(order_id), "line_count": len(items)},
            )
            try:
                order = self._lock_order(order_id)
                SALES_ORDER_WORKFLOW.require_state(
                    order.status, RETURNABLE_STATES, "returned", order.id,
                )
                target_warehouse = warehouse_id or order.warehouse_id

                requested: dict[UUID, int] = defaultdict(int)
                for line in items:
                    requested[line.product_id] += line.quantity

                # Validate every product before touching the ledger
                for product_id, qty in requested.items():
                    order_items = [i for i in order.items if i.product_id == product_id]
                    returnable = sum(i.quantity - i.returned_quantity for i in order_items)
                    if qty > returnable:
                        raise ReturnQuantityExceededError(
                            order_id=order.id,
                            product_id=product_id,
                            requested=qty,
                            returnable=returnable,
                        )

                today = self._clock.today()
                credit_number = document_number(CREDIT_NOTE, today)
                refund = Decimal("0")
                movements = []
                for product_id, qty in requested.items():
                    remaining = qty
                    for item in order.items:
                        if item.product_id != product_id or remaining == 0:
                            continue
                        take = min(item.quantity - item.returned_quantity, remaining)
                        if take <= 0:
                            continue
                        item.returned_quantity += take
                        item.updated_by_id = actor_id
                        refund += item.unit_price * take
                        remaining -= take

                    product = self._session.get(ProductModel, product_id)
                    shelf_life = (
                        product.shelf_life_days
                        if product is not None and product.shelf_life_days
                        else self._config.return_shelf_life_days
                    )
                    _, movement = self._ledger.receive(
                        product_id=product_id,
                        warehouse_id=target_warehouse,
                        batch_number=document_number(RETURN_BATCH, today),
                        quantity=qty,
                        reference=credit_number,
                        actor_id=actor_id or SYSTEM_ACTOR_ID,
                        expiry_date=today + timedelta(days=shelf_life),
                        notes=f"Return against {order.order_number}",
                    )
                    movements.append(movement)

                tax = Decimal("0")
                if self._config.prorate_tax_on_returns and order.subtotal > 0:
                    tax = (order.tax_amount * refund / order.subtotal).quantize(
                        _CENT, rounding=ROUND_HALF_UP,
                    )
                credit_note = InvoiceModel(
                    id=uuid4(),
                    invoice_number=credit_number,
                    customer_id=order.customer_id,
                    sales_order_id=order.id,
                    invoice_date=today,
                    due_date=today,
                    status="draft",
                    is_credit_note=True,
                    subtotal=-refund,
                    tax_amount=-tax,
                    total_amount=-(refund + tax),
                    notes=f"Credit note for return against {order.order_number}",
                    created_by_id=actor_id or SYSTEM_ACTOR_ID,
                )
                self._session.add(credit_note)
                self._session.flush()
                self._session.commit()
                logger.info(
                    "sales_return_committed",
                    extra={
                        "order_id": str(order.id),
                        "credit_note_number": credit_number,
                        "refund_total": str(credit_note.total_amount),
                        "movement_count": len(movements),
                    },
                )
                return credit_note.to_dto(), [m.to_dto() for m in movements]
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "sales_return_rejected",
                    extra={"order_id": str(order_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def cancel(
        self,
        order_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> SalesOrder:
        """Cancel a draft or confirmed order; no stock is touched."""
        with LogContext.bind(document_id=order_id, actor_id=actor_id):
            try:
                order = self._lock_order(order_id)
                SALES_ORDER_WORKFLOW.require_transition(order.status, "cancelled", order.id)
                order.status = "cancelled"
                note = f"Cancelled: {reason}" if reason else "Cancelled"
                order.notes = f"{order.notes}\n{note}" if order.notes else note
                order.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "sales_order_cancelled",
                    extra={"order_id": str(order.id), "reason": reason},
                )
                return order.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "sales_order_cancel_rejected",
                    extra={"order_id": str(order_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: UUID) -> SalesOrder:
        order = self._session.get(SalesOrderModel, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError("SalesOrder", order_id)
        return order.to_dto()

    def invoices_for_order(self, order_id: UUID) -> list[Invoice]:
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.sales_order_id == order_id)
            .order_by(InvoiceModel.invoice_date, InvoiceModel.invoice_number)
        )
        return [inv.to_dto() for inv in self._session.scalars(stmt)]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_order(self, order_id: UUID) -> SalesOrderModel:
        stmt = (
            select(SalesOrderModel)
            .where(SalesOrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = self._session.scalars(stmt).one_or_none()
        if order is None:
            raise NotFoundError("SalesOrder", order_id)
        return order

    def _plan(
        self,
        order: SalesOrderModel,
        warehouse_id: UUID,
        lock: bool,
    ) -> list[Allocation]:
        """Allocate every order line from one shared pool of batches."""
        product_ids = [item.product_id for item in order.items]
        if lock:
            batches = self._ledger.lock_candidates(product_ids, warehouse_id)
        else:
            batches = self._ledger.candidates(product_ids, warehouse_id)

        plans = self._allocator.allocate_many(
            candidates=[b.to_candidate() for b in batches],
            requests=[
                AllocationRequest(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    batch_id=item.batch_id,
                )
                for item in order.items
            ],
            as_of=self._clock.today(),
            warehouse_id=warehouse_id,
        )

        allocations = []
        for item, plan in zip(order.items, plans):
            for line in plan.lines:
                allocations.append(
                    Allocation(
                        item_id=item.id,
                        product_id=item.product_id,
                        batch_id=line.batch_id,
                        batch_number=line.batch_number,
                        quantity=line.quantity,
                        expiry_date=line.expiry_date,
                    )
                )
        return allocations
