"""
Tests for the batch ledger and the inventory service.

Tests cover:
- Opening stock creates or increments the (product, warehouse, number) batch
- Every ledger change writes exactly one signed movement
- Batch quantity equals the sum of its movements
- Corrections are allowed on expired batches but never go below zero
- Sellable quantity excludes expired batches, on-hand includes them
- Expiring-batch listing honours the horizon and FEFO order
"""

from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from fulfillment_kernel.exceptions import InsufficientStockError, NotFoundError
from fulfillment_modules.inventory.ledger import BatchLedger
from fulfillment_modules.inventory.models import MovementType


def _movement_total(inventory, batch_id) -> int:
    return sum(m.quantity for m in inventory.movements_for_batch(batch_id))


class TestReceiveStock:
    """Opening balances booked through the ledger."""

    def test_new_batch_and_in_movement(self, inventory, product, warehouse_id, actor_id):
        batch, movement = inventory.receive_stock(
            product.id, warehouse_id, "LOT-A", 12, actor_id=actor_id,
            expiry_date=date(2025, 3, 1),
        )
        assert batch.quantity == 12
        assert movement.movement_type == MovementType.IN
        assert movement.quantity == 12
        assert movement.batch_id == batch.id
        assert movement.reference == "OPENING"

    def test_same_key_increments(self, inventory, product, warehouse_id, actor_id):
        first, _ = inventory.receive_stock(product.id, warehouse_id, "LOT-A", 4, actor_id=actor_id)
        second, _ = inventory.receive_stock(product.id, warehouse_id, "LOT-A", 6, actor_id=actor_id)
        assert second.id == first.id
        assert second.quantity == 10
        assert len(inventory.movements_for_batch(first.id)) == 2

    def test_other_warehouse_is_separate_batch(self, inventory, product, warehouse_id, actor_id):
        here, _ = inventory.receive_stock(product.id, warehouse_id, "LOT-A", 4, actor_id=actor_id)
        there, _ = inventory.receive_stock(product.id, uuid4(), "LOT-A", 4, actor_id=actor_id)
        assert here.id != there.id

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_rejected(self, inventory, product, warehouse_id, actor_id, quantity):
        with pytest.raises(ValueError):
            inventory.receive_stock(product.id, warehouse_id, "LOT-A", quantity, actor_id=actor_id)


class TestAdjustBatch:
    """Signed corrections."""

    def test_negative_adjustment(self, inventory, product, make_batch, actor_id):
        batch = make_batch(product.id, 10)
        updated, movement = inventory.adjust_batch(batch.id, -3, "damaged", actor_id)
        assert updated.quantity == 7
        assert movement.movement_type == MovementType.ADJUSTMENT
        assert movement.quantity == -3
        assert movement.notes == "damaged"

    def test_allowed_on_expired_batch(self, inventory, product, make_batch, actor_id):
        batch = make_batch(product.id, 5, expiry_date=date(2024, 11, 1))
        updated, _ = inventory.adjust_batch(batch.id, -5, "write-off", actor_id)
        assert updated.quantity == 0

    def test_never_below_zero(self, inventory, product, make_batch, actor_id):
        batch = make_batch(product.id, 2)
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory.adjust_batch(batch.id, -3, "count", actor_id)
        assert exc_info.value.available == 2
        assert inventory.get_batch(batch.id).quantity == 2
        assert len(inventory.movements_for_batch(batch.id)) == 1

    def test_zero_delta_rejected(self, inventory, product, make_batch, actor_id):
        batch = make_batch(product.id, 2)
        with pytest.raises(ValueError):
            inventory.adjust_batch(batch.id, 0, "noop", actor_id)

    def test_unknown_batch(self, inventory, actor_id):
        with pytest.raises(NotFoundError):
            inventory.adjust_batch(uuid4(), 1, "found", actor_id)


class TestLedgerConservation:
    """Batch quantity is the sum of its movements."""

    def test_after_mixed_operations(self, inventory, product, warehouse_id, make_batch, actor_id):
        batch = make_batch(product.id, 10, batch_number="LOT-C")
        inventory.receive_stock(product.id, warehouse_id, "LOT-C", 5, actor_id=actor_id)
        inventory.adjust_batch(batch.id, -4, "shrinkage", actor_id)
        inventory.adjust_batch(batch.id, 2, "recount", actor_id)

        current = inventory.get_batch(batch.id)
        assert current.quantity == 13
        assert _movement_total(inventory, batch.id) == current.quantity

    def test_consume_records_out_movement(self, session, clock, inventory, product, make_batch, actor_id):
        batch = make_batch(product.id, 10)
        ledger = BatchLedger(session, clock)
        movement = ledger.consume(batch.id, 4, reference="SO-TEST", actor_id=actor_id)
        session.commit()

        assert movement.movement_type == MovementType.OUT.value
        assert movement.quantity == -4
        assert inventory.get_batch(batch.id).quantity == 6
        assert _movement_total(inventory, batch.id) == 6

    def test_consume_more_than_available(self, session, clock, product, make_batch):
        batch = make_batch(product.id, 3)
        ledger = BatchLedger(session, clock)
        with pytest.raises(InsufficientStockError):
            ledger.consume(batch.id, 4, reference="SO-TEST")
        session.rollback()


class TestStockQueries:
    """Read-only stock views."""

    def test_sellable_excludes_expired(self, inventory, product, make_batch, warehouse_id):
        make_batch(product.id, 4, expiry_date=date(2024, 11, 30))
        make_batch(product.id, 6, expiry_date=date(2024, 12, 1))
        make_batch(product.id, 3)

        assert inventory.stock_on_hand(product.id, warehouse_id) == 13
        assert inventory.sellable_quantity(product.id, warehouse_id) == 9

    def test_batches_in_fefo_order(self, inventory, product, make_batch, warehouse_id):
        make_batch(product.id, 3, batch_number="UNDATED")
        make_batch(product.id, 5, expiry_date=date(2025, 6, 1), batch_number="LATE")
        make_batch(product.id, 5, expiry_date=date(2025, 1, 1), batch_number="EARLY")

        numbers = [b.batch_number for b in inventory.batches(product.id, warehouse_id)]
        assert numbers == ["EARLY", "LATE", "UNDATED"]

    def test_expiring_within_horizon(self, inventory, product, make_batch):
        make_batch(product.id, 5, expiry_date=date(2024, 12, 20), batch_number="SOON")
        make_batch(product.id, 5, expiry_date=date(2025, 6, 1), batch_number="LATER")
        make_batch(product.id, 5, expiry_date=date(2024, 11, 1), batch_number="GONE")
        empty = make_batch(product.id, 1, expiry_date=date(2024, 12, 10), batch_number="EMPTY")
        inventory.adjust_batch(empty.id, -1, "sold out", uuid4())

        assert [b.batch_number for b in inventory.expiring_batches(30)] == ["SOON"]
        assert [b.batch_number for b in inventory.expiring_batches()] == ["SOON"]
        assert [b.batch_number for b in inventory.expiring_batches(365)] == ["SOON", "LATER"]

    def test_negative_horizon_rejected(self, inventory):
        with pytest.raises(ValueError):
            inventory.expiring_batches(-1)
