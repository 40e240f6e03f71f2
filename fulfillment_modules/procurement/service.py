"""
Procurement Module Service (``fulfillment_modules.procurement.service``).

Responsibility
--------------
Procure-to-pay for physical goods: purchase orders and their lifecycle,
goods receipt posting into the batch ledger, vendor bills and the three-way
match between them.

Architecture position
---------------------
**Modules layer** -- ``ProcurementService`` is the public entry point for
procurement operations.  Match classification is delegated to
``fulfillment_engines.matching``; every ledger change goes through
``BatchLedger``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on success,
  ``rollback`` on any exception, which is re-raised).
  ``stage_purchase_order`` is the exception: it flushes into the caller's
  transaction and never commits.
* Document rows are re-read with ``SELECT ... FOR UPDATE`` before their
  status is validated.
* A goods receipt is posted exactly once; every line is validated before
  any batch is touched.
* PO key fields are frozen from ``confirmed`` onward.
* One ``MatchResultModel`` per PO; a manually resolved result survives
  re-evaluation.

Failure modes
-------------
* ``NotFoundError``, ``InvalidStateTransitionError``, ``AlreadyPostedError``,
  ``ExpiredOnReceiptError``, ``ImmutableFieldError``,
  ``ExchangeRateUnavailableError``.
* ``ValueError`` on empty line lists, unknown fields, or products that are
  not on the purchase order.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fulfillment_engines.matching import ThreeWayMatchStatus, evaluate_three_way_match
from fulfillment_kernel.domain.actors import SYSTEM_ACTOR_ID
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import (
    GOODS_RECEIPT,
    PURCHASE_ORDER,
    VENDOR_BILL,
    document_number,
)
from fulfillment_kernel.domain.fx import ExchangeRateProvider
from fulfillment_kernel.exceptions import (
    AlreadyPostedError,
    ExchangeRateUnavailableError,
    ExpiredOnReceiptError,
    FulfillmentError,
    ImmutableFieldError,
    InvalidStateTransitionError,
    NotFoundError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules.inventory.ledger import BatchLedger
from fulfillment_modules.inventory.orm import ProductModel
from fulfillment_modules.procurement.config import ProcurementConfig
from fulfillment_modules.procurement.models import (
    BillStatus,
    GoodsReceipt,
    MatchResult,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLine,
    VendorBill,
)
from fulfillment_modules.procurement.orm import (
    PO_KEY_FIELDS,
    GoodsReceiptItemModel,
    GoodsReceiptModel,
    MatchResultModel,
    PurchaseOrderItemModel,
    PurchaseOrderModel,
    VendorBillModel,
)
from fulfillment_modules.procurement.workflows import (
    GOODS_RECEIPT_WORKFLOW,
    LOCKED_STATES,
    PURCHASE_ORDER_WORKFLOW,
    RECEIVABLE_STATES,
)

logger = get_logger("modules.procurement.service")

# Header fields that may be changed through update_purchase_order
_UPDATABLE_FIELDS = frozenset(
    {
        "supplier_id",
        "order_date",
        "currency",
        "tax_amount",
        "expected_delivery_date",
        "notes",
    }
)
_DERIVED_FIELDS = frozenset({"subtotal", "total_amount"})


class ProcurementService:
    """
    Orchestrates purchase orders, goods receipts, bills and matching.

    Usage::

        service = ProcurementService(session, clock=clock)
        po = service.create_purchase_order(supplier_id, lines, actor_id)
        service.send_purchase_order(po.id, actor_id)
        service.confirm_purchase_order(po.id, actor_id)
        gr = service.create_goods_receipt(po.id, warehouse_id, receipt_lines, actor_id)
        service.post_goods_receipt(gr.id, actor_id)
        service.record_vendor_bill(supplier_id, Decimal("1000"), actor_id, po_id=po.id)
        result = service.perform_three_way_match(po.id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ProcurementConfig | None = None,
        fx_provider: ExchangeRateProvider | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ProcurementConfig.with_defaults()
        self._fx = fx_provider
        self._ledger = BatchLedger(session, self._clock)

    # =========================================================================
    # Purchase orders
    # =========================================================================

    def stage_purchase_order(
        self,
        supplier_id: UUID,
        lines: Sequence[PurchaseOrderLine],
        actor_id: UUID,
        currency: str = "USD",
        tax_amount: Decimal = Decimal("0"),
        pr_id: UUID | None = None,
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrderModel:
        """Build and flush a ``draft`` PO inside the caller's transaction."""
        if not lines:
            raise ValueError("A purchase order needs at least one line")
        if tax_amount < 0:
            raise ValueError(f"Tax amount cannot be negative: {tax_amount}")

        today = self._clock.today()
        po = PurchaseOrderModel(
            id=uuid4(),
            order_number=document_number(PURCHASE_ORDER, today),
            pr_id=pr_id,
            supplier_id=supplier_id,
            status=PURCHASE_ORDER_WORKFLOW.initial_state,
            order_date=today,
            expected_delivery_date=expected_delivery_date,
            currency=currency.upper(),
            tax_amount=tax_amount,
            notes=notes,
            created_by_id=actor_id,
        )
        subtotal = Decimal("0")
        for idx, line in enumerate(lines, start=1):
            if self._session.get(ProductModel, line.product_id) is None:
                raise NotFoundError("Product", line.product_id)
            total_price = line.unit_price * line.quantity
            subtotal += total_price
            po.items.append(
                PurchaseOrderItemModel(
                    id=uuid4(),
                    line_number=idx,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=total_price,
                    created_by_id=actor_id,
                )
            )
        po.subtotal = subtotal
        po.total_amount = subtotal + tax_amount
        self._session.add(po)
        self._session.flush()
        logger.info(
            "purchase_order_staged",
            extra={
                "po_id": str(po.id),
                "order_number": po.order_number,
                "line_count": len(lines),
                "total_amount": str(po.total_amount),
                "pr_id": str(pr_id) if pr_id else None,
            },
        )
        return po

    def create_purchase_order(
        self,
        supplier_id: UUID,
        lines: Sequence[PurchaseOrderLine],
        actor_id: UUID,
        currency: str = "USD",
        tax_amount: Decimal = Decimal("0"),
        expected_delivery_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        try:
            po = self.stage_purchase_order(
                supplier_id,
                lines,
                actor_id,
                currency=currency,
                tax_amount=tax_amount,
                expected_delivery_date=expected_delivery_date,
                notes=notes,
            )
            self._session.commit()
            return po.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def send_purchase_order(self, po_id: UUID, actor_id: UUID | None = None) -> PurchaseOrder:
        """``draft -> sent``."""
        return self._transition_po(po_id, "sent", actor_id)

    def confirm_purchase_order(self, po_id: UUID, actor_id: UUID | None = None) -> PurchaseOrder:
        """``sent -> confirmed``; key fields are frozen from here on."""
        return self._transition_po(po_id, "confirmed", actor_id)

    def cancel_purchase_order(
        self,
        po_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> PurchaseOrder:
        note = f"Cancelled: {reason}" if reason else "Cancelled"
        return self._transition_po(po_id, "cancelled", actor_id, note=note)

    def update_purchase_order(
        self,
        po_id: UUID,
        changes: Mapping[str, object],
        actor_id: UUID,
    ) -> PurchaseOrder:
        """
        Change PO header fields.

        Key fields (supplier, order date, currency, amounts) fail with
        ``ImmutableFieldError`` once the PO is ``confirmed`` or later.
        Amount changes go through ``tax_amount``; subtotal and total are
        derived from the lines.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS - _DERIVED_FIELDS
        if unknown:
            raise ValueError(f"Unknown purchase order fields: {sorted(unknown)}")

        with LogContext.bind(document_id=po_id, actor_id=actor_id):
            try:
                po = self._lock_po(po_id)
                if po.status in LOCKED_STATES:
                    for name in PO_KEY_FIELDS:
                        if name in changes and changes[name] != getattr(po, name):
                            raise ImmutableFieldError(
                                "PurchaseOrder", po.id, name, po.status,
                            )
                derived = _DERIVED_FIELDS & set(changes)
                if derived:
                    raise ValueError(
                        f"Fields {sorted(derived)} are derived from the order lines"
                    )
                if PURCHASE_ORDER_WORKFLOW.allowed_targets(po.status) == ():
                    raise InvalidStateTransitionError(
                        PURCHASE_ORDER_WORKFLOW.name, po.status, po.status, po.id,
                    )

                for name, value in changes.items():
                    setattr(po, name, value)
                if "tax_amount" in changes:
                    if po.tax_amount < 0:
                        raise ValueError(f"Tax amount cannot be negative: {po.tax_amount}")
                    po.total_amount = po.subtotal + po.tax_amount
                po.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "purchase_order_updated",
                    extra={"po_id": str(po.id), "fields": sorted(changes)},
                )
                return po.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_order_update_rejected",
                    extra={"po_id": str(po_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Goods receipts
    # =========================================================================

    def create_goods_receipt(
        self,
        po_id: UUID,
        warehouse_id: UUID,
        lines: Sequence[ReceiptLine],
        actor_id: UUID,
    ) -> GoodsReceipt:
        """Record a ``draft`` receipt; nothing moves until it is posted."""
        if not lines:
            raise ValueError("A goods receipt needs at least one line")

        with LogContext.bind(document_id=po_id, actor_id=actor_id):
            try:
                po = self._lock_po(po_id)
                PURCHASE_ORDER_WORKFLOW.require_state(
                    po.status, RECEIVABLE_STATES, "received", po.id,
                )
                ordered_products = {item.product_id for item in po.items}
                now = self._clock.now_utc()
                gr_number = document_number(GOODS_RECEIPT, now.date())
                receipt = GoodsReceiptModel(
                    id=uuid4(),
                    gr_number=gr_number,
                    po_id=po.id,
                    warehouse_id=warehouse_id,
                    status=GOODS_RECEIPT_WORKFLOW.initial_state,
                    received_by=actor_id,
                    received_at=now,
                    created_by_id=actor_id,
                )
                for idx, line in enumerate(lines, start=1):
                    if line.product_id not in ordered_products:
                        raise ValueError(
                            f"Product {line.product_id} is not on purchase order "
                            f"{po.order_number}"
                        )
                    receipt.items.append(
                        GoodsReceiptItemModel(
                            id=uuid4(),
                            line_number=idx,
                            product_id=line.product_id,
                            quantity=line.quantity,
                            batch_number=line.batch_number or f"{gr_number}-{idx}",
                            expiry_date=line.expiry_date,
                            manufacture_date=line.manufacture_date,
                            created_by_id=actor_id,
                        )
                    )
                self._session.add(receipt)
                self._session.flush()
                self._session.commit()
                logger.info(
                    "goods_receipt_created",
                    extra={
                        "gr_id": str(receipt.id),
                        "gr_number": gr_number,
                        "po_id": str(po.id),
                        "line_count": len(lines),
                    },
                )
                return receipt.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "goods_receipt_create_rejected",
                    extra={"po_id": str(po_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def post_goods_receipt(
        self,
        gr_id: UUID,
        actor_id: UUID | None = None,
    ) -> GoodsReceipt:
        """
        ``draft -> posted``: book every line into the batch ledger.

        Expiry dates are checked for all lines before any batch is locked.
        When posted receipts cover the ordered quantity, a ``confirmed`` PO
        moves to ``received``.
        """
        with LogContext.bind(document_id=gr_id, actor_id=actor_id):
            logger.info("goods_receipt_post_started", extra={"gr_id": str(gr_id)})
            try:
                receipt = self._lock(GoodsReceiptModel, gr_id, "GoodsReceipt")
                if receipt.status == "posted":
                    raise AlreadyPostedError(receipt.id)
                GOODS_RECEIPT_WORKFLOW.require_transition(receipt.status, "posted", receipt.id)

                po = self._lock_po(receipt.po_id)
                PURCHASE_ORDER_WORKFLOW.require_state(
                    po.status, RECEIVABLE_STATES, "received", po.id,
                )

                today = self._clock.today()
                for item in receipt.items:
                    if item.expiry_date is not None and item.expiry_date <= today:
                        raise ExpiredOnReceiptError(
                            receipt_id=receipt.id,
                            product_id=item.product_id,
                            batch_number=item.batch_number,
                            expiry_date=item.expiry_date,
                        )

                batches = self._ledger.lock_by_keys(
                    (item.product_id, receipt.warehouse_id, item.batch_number)
                    for item in receipt.items
                )
                movement_count = 0
                for item in receipt.items:
                    key = (item.product_id, receipt.warehouse_id, item.batch_number)
                    batch, _ = self._ledger.receive(
                        product_id=item.product_id,
                        warehouse_id=receipt.warehouse_id,
                        batch_number=item.batch_number,
                        quantity=item.quantity,
                        reference=receipt.gr_number,
                        actor_id=actor_id or SYSTEM_ACTOR_ID,
                        expiry_date=item.expiry_date,
                        manufacture_date=item.manufacture_date,
                        cost_per_unit=po.unit_price_for(item.product_id),
                        notes=f"Goods receipt {receipt.gr_number} for {po.order_number}",
                        existing=batches.get(key),
                    )
                    batches[key] = batch
                    item.batch_id = batch.id
                    movement_count += 1

                receipt.status = "posted"
                receipt.posted_at = self._clock.now_utc()
                receipt.updated_by_id = actor_id
                self._session.flush()

                received = self._received_quantity(po.id)
                if po.status == "confirmed" and received >= po.ordered_quantity:
                    PURCHASE_ORDER_WORKFLOW.require_transition(po.status, "received", po.id)
                    po.status = "received"
                    po.delivery_date = today
                    po.updated_by_id = actor_id

                self._session.flush()
                self._session.commit()
                logger.info(
                    "goods_receipt_post_committed",
                    extra={
                        "gr_id": str(receipt.id),
                        "gr_number": receipt.gr_number,
                        "po_id": str(po.id),
                        "po_status": po.status,
                        "received_quantity": received,
                        "movement_count": movement_count,
                    },
                )
                return receipt.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "goods_receipt_post_rejected",
                    extra={"gr_id": str(gr_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Vendor bills
    # =========================================================================

    def record_vendor_bill(
        self,
        supplier_id: UUID,
        total_amount: Decimal,
        actor_id: UUID,
        po_id: UUID | None = None,
        currency: str = "USD",
        bill_date: date | None = None,
        due_date: date | None = None,
        bill_number: str | None = None,
        status: str = "draft",
    ) -> VendorBill:
        if total_amount < 0:
            raise ValueError(f"Bill total cannot be negative: {total_amount}")
        bill_status = BillStatus(status)
        try:
            if po_id is not None and self._session.get(PurchaseOrderModel, po_id) is None:
                raise NotFoundError("PurchaseOrder", po_id)
            today = self._clock.today()
            bill = VendorBillModel(
                id=uuid4(),
                bill_number=bill_number or document_number(VENDOR_BILL, today),
                po_id=po_id,
                supplier_id=supplier_id,
                total_amount=total_amount,
                currency=currency.upper(),
                status=bill_status.value,
                bill_date=bill_date or today,
                due_date=due_date,
                recorded_at=self._clock.now_utc(),
                created_by_id=actor_id,
            )
            self._session.add(bill)
            self._session.flush()
            self._session.commit()
            logger.info(
                "vendor_bill_recorded",
                extra={
                    "bill_id": str(bill.id),
                    "bill_number": bill.bill_number,
                    "po_id": str(po_id) if po_id else None,
                    "total_amount": str(total_amount),
                    "currency": bill.currency,
                },
            )
            return bill.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Three-way match
    # =========================================================================

    def perform_three_way_match(
        self,
        po_id: UUID,
        actor_id: UUID | None = None,
    ) -> MatchResult:
        """
        Evaluate the PO against its posted receipts and latest bill.

        Re-running updates the existing result.  A ``matched`` outcome
        closes the PO, passing through ``received`` when a short receipt
        within tolerance left it ``confirmed``.
        """
        with LogContext.bind(document_id=po_id, actor_id=actor_id):
            logger.info("three_way_match_started", extra={"po_id": str(po_id)})
            try:
                po = self._lock_po(po_id)
                result = self._session.scalars(
                    select(MatchResultModel)
                    .where(MatchResultModel.po_id == po.id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).one_or_none()
                if result is not None and result.resolved_by is not None:
                    self._session.commit()
                    logger.info(
                        "three_way_match_preserved_resolution",
                        extra={"po_id": str(po.id), "match_id": str(result.id)},
                    )
                    return result.to_dto()

                receipts = list(
                    self._session.scalars(
                        select(GoodsReceiptModel)
                        .where(
                            GoodsReceiptModel.po_id == po.id,
                            GoodsReceiptModel.status == "posted",
                        )
                        .order_by(GoodsReceiptModel.posted_at, GoodsReceiptModel.gr_number)
                        .execution_options(populate_existing=True)
                    )
                )
                received = (
                    sum(item.quantity for gr in receipts for item in gr.items)
                    if receipts
                    else None
                )

                bill = self._session.scalars(
                    select(VendorBillModel)
                    .where(
                        VendorBillModel.po_id == po.id,
                        VendorBillModel.status != BillStatus.CANCELLED.value,
                    )
                    .order_by(
                        VendorBillModel.recorded_at.desc(),
                        VendorBillModel.bill_number.desc(),
                    )
                ).first()
                bill_total = None
                if bill is not None:
                    bill_total = self._convert(bill, po.currency)

                evaluation = evaluate_three_way_match(
                    ordered_quantity=po.ordered_quantity,
                    po_total=po.total_amount,
                    received_quantity=received,
                    bill_total=bill_total,
                    tolerance=self._config.match_tolerance,
                )
                details = dict(evaluation.details)
                if bill is not None and bill.currency != po.currency:
                    details["bill_currency"] = bill.currency
                    details["bill_amount"] = str(bill.total_amount)

                if result is None:
                    result = MatchResultModel(
                        id=uuid4(),
                        po_id=po.id,
                        created_by_id=actor_id or SYSTEM_ACTOR_ID,
                    )
                    self._session.add(result)
                else:
                    result.updated_by_id = actor_id
                result.gr_id = receipts[-1].id if receipts else None
                result.bill_id = bill.id if bill is not None else None
                result.status = evaluation.status.value
                result.quantity_variance = evaluation.quantity_variance
                result.price_variance = evaluation.price_variance
                result.match_details = details

                if evaluation.is_matched:
                    self._close_matched_po(po, actor_id)

                self._session.flush()
                self._session.commit()
                logger.info(
                    "three_way_match_committed",
                    extra={
                        "po_id": str(po.id),
                        "match_id": str(result.id),
                        "status": result.status,
                        "quantity_variance": str(result.quantity_variance),
                        "price_variance": str(result.price_variance),
                        "po_status": po.status,
                    },
                )
                return result.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "three_way_match_rejected",
                    extra={"po_id": str(po_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def resolve_match_exception(
        self,
        match_id: UUID,
        resolver_id: UUID,
        notes: str | None = None,
    ) -> MatchResult:
        """Force a non-matched result to ``matched``; variances are kept as-is."""
        with LogContext.bind(document_id=match_id, actor_id=resolver_id):
            try:
                result = self._lock(MatchResultModel, match_id, "MatchResult")
                if result.status == ThreeWayMatchStatus.MATCHED.value:
                    raise InvalidStateTransitionError(
                        "three_way_match", result.status, ThreeWayMatchStatus.MATCHED.value,
                        result.id,
                    )
                previous = result.status
                result.status = ThreeWayMatchStatus.MATCHED.value
                result.resolved_by = resolver_id
                result.resolved_at = self._clock.now_utc()
                result.notes = notes
                result.updated_by_id = resolver_id

                po = self._lock_po(result.po_id)
                if result.gr_id is not None:
                    self._close_matched_po(po, resolver_id)

                self._session.flush()
                self._session.commit()
                logger.info(
                    "three_way_match_resolved",
                    extra={
                        "match_id": str(result.id),
                        "po_id": str(po.id),
                        "previous_status": previous,
                        "po_status": po.status,
                    },
                )
                return result.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "three_way_match_resolve_rejected",
                    extra={"match_id": str(match_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_purchase_order(self, po_id: UUID) -> PurchaseOrder:
        return self._get(PurchaseOrderModel, po_id, "PurchaseOrder").to_dto()

    def get_goods_receipt(self, gr_id: UUID) -> GoodsReceipt:
        return self._get(GoodsReceiptModel, gr_id, "GoodsReceipt").to_dto()

    def get_vendor_bill(self, bill_id: UUID) -> VendorBill:
        return self._get(VendorBillModel, bill_id, "VendorBill").to_dto()

    def get_match_result(self, po_id: UUID) -> MatchResult | None:
        result = self._session.scalars(
            select(MatchResultModel)
            .where(MatchResultModel.po_id == po_id)
            .execution_options(populate_existing=True)
        ).one_or_none()
        return result.to_dto() if result is not None else None

    def receipts_for_order(self, po_id: UUID) -> list[GoodsReceipt]:
        stmt = (
            select(GoodsReceiptModel)
            .where(GoodsReceiptModel.po_id == po_id)
            .order_by(GoodsReceiptModel.received_at, GoodsReceiptModel.gr_number)
            .execution_options(populate_existing=True)
        )
        return [gr.to_dto() for gr in self._session.scalars(stmt)]

    def bills_for_order(self, po_id: UUID) -> list[VendorBill]:
        stmt = (
            select(VendorBillModel)
            .where(VendorBillModel.po_id == po_id)
            .order_by(VendorBillModel.recorded_at, VendorBillModel.bill_number)
        )
        return [bill.to_dto() for bill in self._session.scalars(stmt)]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _transition_po(
        self,
        po_id: UUID,
        to_state: str,
        actor_id: UUID | None,
        note: str | None = None,
    ) -> PurchaseOrder:
        with LogContext.bind(document_id=po_id, actor_id=actor_id):
            try:
                po = self._lock_po(po_id)
                from_state = po.status
                PURCHASE_ORDER_WORKFLOW.require_transition(from_state, to_state, po.id)
                po.status = to_state
                if note:
                    po.notes = f"{po.notes}\n{note}" if po.notes else note
                po.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "purchase_order_transitioned",
                    extra={
                        "po_id": str(po.id),
                        "order_number": po.order_number,
                        "from_state": from_state,
                        "to_state": to_state,
                    },
                )
                return po.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_order_transition_rejected",
                    extra={"po_id": str(po_id), "to_state": to_state, "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def _lock(self, model, entity_id: UUID, entity: str):
        row = self._session.get(
            model,
            entity_id,
            with_for_update=True,
            populate_existing=True,
        )
        if row is None:
            raise NotFoundError(entity, entity_id)
        return row

    def _lock_po(self, po_id: UUID) -> PurchaseOrderModel:
        return self._lock(PurchaseOrderModel, po_id, "PurchaseOrder")

    def _get(self, model, entity_id: UUID, entity: str):
        row = self._session.get(model, entity_id, populate_existing=True)
        if row is None:
            raise NotFoundError(entity, entity_id)
        return row

    def _close_matched_po(self, po: PurchaseOrderModel, actor_id: UUID | None) -> None:
        """
        Close a PO whose match result is ``matched``.

        A short receipt within quantity tolerance leaves the PO ``confirmed``;
        it is moved to ``received`` first, flushed on its own because the
        status listener accepts one transition per row per flush.
        """
        if po.status == "confirmed":
            PURCHASE_ORDER_WORKFLOW.require_transition(po.status, "received", po.id)
            po.status = "received"
            po.delivery_date = self._clock.today()
            po.updated_by_id = actor_id
            self._session.flush()
        if po.status == "received":
            PURCHASE_ORDER_WORKFLOW.require_transition(po.status, "closed", po.id)
            po.status = "closed"
            po.updated_by_id = actor_id

    def _received_quantity(self, po_id: UUID) -> int:
        stmt = (
            select(func.coalesce(func.sum(GoodsReceiptItemModel.quantity), 0))
            .join(GoodsReceiptModel, GoodsReceiptItemModel.gr_id == GoodsReceiptModel.id)
            .where(
                GoodsReceiptModel.po_id == po_id,
                GoodsReceiptModel.status == "posted",
            )
        )
        return int(self._session.scalar(stmt))

    def _convert(self, bill: VendorBillModel, currency: str) -> Decimal:
        if bill.currency == currency:
            return bill.total_amount
        if self._fx is None:
            raise ExchangeRateUnavailableError(bill.currency, currency, bill.bill_date)
        return self._fx.convert(bill.total_amount, bill.currency, currency, bill.bill_date)
