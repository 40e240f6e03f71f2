"""
Tests for the ORM integrity listeners.

Tests cover:
- Stock movements cannot be updated or deleted
- Batches cannot be deleted
- Direct status assignment is checked against the workflow tables
- Purchase order key fields and lines are frozen once confirmed
- Posted goods receipts are frozen
- Registration is idempotent
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event, select

from fulfillment_kernel.db.immutability import (
    _check_batch_delete,
    register_immutability_listeners,
)
from fulfillment_kernel.exceptions import (
    ImmutabilityViolationError,
    ImmutableFieldError,
    InvalidStateTransitionError,
)
from fulfillment_modules.inventory.orm import BatchModel, StockMovementModel
from fulfillment_modules.procurement.models import PurchaseOrderLine
from fulfillment_modules.procurement.orm import GoodsReceiptModel, PurchaseOrderModel
from fulfillment_modules.requisitions.models import PurchaseRequestLine
from fulfillment_modules.requisitions.orm import PurchaseRequestModel
from fulfillment_modules.sales.orm import SalesOrderModel


class TestLedgerRows:
    """The batch ledger's audit trail is append-only."""

    def test_movement_update_blocked(self, session, product, make_batch):
        batch = make_batch(product.id, 5)
        movement = session.scalars(
            select(StockMovementModel).where(StockMovementModel.batch_id == batch.id)
        ).one()
        movement.quantity = 50
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_movement_delete_blocked(self, session, product, make_batch):
        batch = make_batch(product.id, 5)
        movement = session.scalars(
            select(StockMovementModel).where(StockMovementModel.batch_id == batch.id)
        ).one()
        session.delete(movement)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_batch_delete_blocked(self, session, product, make_batch):
        batch = make_batch(product.id, 5)
        session.delete(session.get(BatchModel, batch.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_negative_quantity_rejected_by_validator(self, session, product, make_batch):
        batch = make_batch(product.id, 5)
        row = session.get(BatchModel, batch.id)
        with pytest.raises(ValueError):
            row.quantity = -1
        session.rollback()


class TestStatusColumns:
    """Status assignments that bypass the services are still checked."""

    def test_sales_order_skip_to_shipped(self, session, product, make_order):
        order = make_order((product.id, 1))
        row = session.get(SalesOrderModel, order.id)
        row.status = "shipped"
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            session.flush()
        assert exc_info.value.entity == "sales_order"
        session.rollback()

    def test_purchase_order_reopen(self, session, product, make_confirmed_po):
        po = make_confirmed_po(product.id)
        row = session.get(PurchaseOrderModel, po.id)
        row.status = "draft"
        with pytest.raises(InvalidStateTransitionError):
            session.flush()
        session.rollback()

    def test_purchase_request_skip_approval(self, session, requisitions, product):
        pr = requisitions.create_purchase_request(
            uuid4(), [PurchaseRequestLine(product.id, 1, Decimal("1"))],
        )
        row = session.get(PurchaseRequestModel, pr.id)
        row.status = "approved"
        with pytest.raises(InvalidStateTransitionError):
            session.flush()
        session.rollback()

    def test_legal_transition_passes(self, session, product, make_order):
        order = make_order((product.id, 1))
        row = session.get(SalesOrderModel, order.id)
        row.status = "cancelled"
        session.flush()
        session.rollback()


class TestPurchaseOrderFreeze:

    def test_key_field_on_confirmed_po(self, session, product, make_confirmed_po):
        po = make_confirmed_po(product.id)
        row = session.get(PurchaseOrderModel, po.id)
        row.total_amount = Decimal("1.00")
        with pytest.raises(ImmutableFieldError) as exc_info:
            session.flush()
        assert exc_info.value.field == "total_amount"
        assert exc_info.value.status == "confirmed"
        session.rollback()

    def test_line_on_confirmed_po(self, session, product, make_confirmed_po):
        po = make_confirmed_po(product.id)
        row = session.get(PurchaseOrderModel, po.id)
        row.items[0].quantity = 999
        with pytest.raises(ImmutableFieldError):
            session.flush()
        session.rollback()

    def test_draft_po_is_editable(self, session, procurement, product, supplier_id, actor_id):
        po = procurement.create_purchase_order(
            supplier_id, [PurchaseOrderLine(product.id, 1, Decimal("1"))], actor_id=actor_id,
        )
        row = session.get(PurchaseOrderModel, po.id)
        row.order_date = date(2024, 12, 2)
        row.items[0].quantity = 2
        session.flush()
        session.rollback()


class TestPostedReceiptFreeze:

    def test_posted_receipt_field_change(self, session, product, make_confirmed_po, receive_po):
        po = make_confirmed_po(product.id)
        receipt = receive_po(po, product.id, 10)
        row = session.get(GoodsReceiptModel, receipt.id)
        row.warehouse_id = po.supplier_id
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


def test_registration_is_idempotent():
    register_immutability_listeners()
    register_immutability_listeners()
    assert event.contains(BatchModel, "before_delete", _check_batch_delete)
