"""
Hypothesis-based properties of the allocation engine.

Properties checked:
- Conservation: a successful plan allocates exactly the requested quantity
  and never draws more from a batch than it holds
- No expired or empty batch is ever selected
- Lines come out in FEFO order (fefo_sort_key is monotone across the plan)
- Only the last line may leave stock behind in its batch
- Failure happens exactly when sellable stock is short, and names the
  sellable total
- allocate_many never draws a batch below zero across lines

Boundaries not fuzzed here (covered by explicit tests):
- Explicit batch selection (tests/engines/test_fefo_allocation.py)
- Database locking (tests/concurrency/test_stale_allocation.py)
"""

from datetime import date, timedelta
from uuid import UUID, uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fulfillment_engines.allocation import (
    AllocationEngine,
    AllocationRequest,
    BatchCandidate,
    fefo_sort_key,
)
from fulfillment_kernel.exceptions import InsufficientStockError

AS_OF = date(2024, 12, 1)
PRODUCT = UUID("11111111-1111-1111-1111-111111111111")
WAREHOUSE = UUID("22222222-2222-2222-2222-222222222222")


@st.composite
def candidates(draw, min_size=0, max_size=12):
    """Batches with expiries from 30 days past to a year ahead, some undated."""
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    batches = []
    for idx in range(count):
        offset = draw(st.one_of(st.none(), st.integers(min_value=-30, max_value=365)))
        batches.append(
            BatchCandidate(
                batch_id=uuid4(),
                product_id=PRODUCT,
                warehouse_id=WAREHOUSE,
                batch_number=draw(st.sampled_from(["A", "B", "C"])) + f"-{idx}",
                quantity=draw(st.integers(min_value=0, max_value=50)),
                expiry_date=None if offset is None else AS_OF + timedelta(days=offset),
            )
        )
    return batches


def _sellable_total(batches) -> int:
    return sum(b.quantity for b in batches if b.is_sellable(AS_OF))


class TestFefoProperties:

    @given(batches=candidates(), quantity=st.integers(min_value=1, max_value=300))
    @settings(max_examples=200, deadline=None)
    def test_plan_conserves_quantity(self, batches, quantity):
        engine = AllocationEngine()
        available = _sellable_total(batches)
        if quantity > available:
            with pytest.raises(InsufficientStockError) as exc_info:
                engine.allocate(candidates=batches, quantity=quantity, as_of=AS_OF)
            assert exc_info.value.available == available
            return

        plan = engine.allocate(candidates=batches, quantity=quantity, as_of=AS_OF)
        by_id = {b.batch_id: b for b in batches}
        assert plan.allocated == quantity
        assert len({line.batch_id for line in plan.lines}) == len(plan.lines)
        for line in plan.lines:
            assert 0 < line.quantity <= by_id[line.batch_id].quantity

    @given(batches=candidates(min_size=1), quantity=st.integers(min_value=1, max_value=300))
    @settings(max_examples=200, deadline=None)
    def test_never_selects_expired_or_empty(self, batches, quantity):
        if quantity > _sellable_total(batches):
            return
        plan = AllocationEngine().allocate(candidates=batches, quantity=quantity, as_of=AS_OF)
        by_id = {b.batch_id: b for b in batches}
        for line in plan.lines:
            chosen = by_id[line.batch_id]
            assert chosen.quantity > 0
            assert chosen.expiry_date is None or chosen.expiry_date >= AS_OF

    @given(batches=candidates(min_size=1), quantity=st.integers(min_value=1, max_value=300))
    @settings(max_examples=200, deadline=None)
    def test_lines_in_fefo_order_and_greedy(self, batches, quantity):
        if quantity > _sellable_total(batches):
            return
        plan = AllocationEngine().allocate(candidates=batches, quantity=quantity, as_of=AS_OF)
        by_id = {b.batch_id: b for b in batches}
        keys = [fefo_sort_key(by_id[line.batch_id]) for line in plan.lines]
        assert keys == sorted(keys)
        for line in plan.lines[:-1]:
            assert line.quantity == by_id[line.batch_id].quantity

    @given(batches=candidates(min_size=1), quantity=st.integers(min_value=1, max_value=300))
    @settings(max_examples=100, deadline=None)
    def test_deterministic(self, batches, quantity):
        if quantity > _sellable_total(batches):
            return
        engine = AllocationEngine()
        first = engine.allocate(candidates=batches, quantity=quantity, as_of=AS_OF)
        second = engine.allocate(
            candidates=list(reversed(batches)), quantity=quantity, as_of=AS_OF,
        )
        assert first.as_pairs() == second.as_pairs()


class TestSharedPoolProperties:

    @given(
        batches=candidates(min_size=1),
        quantities=st.lists(st.integers(min_value=1, max_value=40), min_size=1, max_size=5),
    )
    @settings(max_examples=150, deadline=None)
    def test_pool_never_overdrawn(self, batches, quantities):
        requests = [AllocationRequest(product_id=PRODUCT, quantity=q) for q in quantities]
        if sum(quantities) > _sellable_total(batches):
            with pytest.raises(InsufficientStockError):
                AllocationEngine().allocate_many(
                    candidates=batches, requests=requests, as_of=AS_OF,
                )
            return

        plans = AllocationEngine().allocate_many(
            candidates=batches, requests=requests, as_of=AS_OF,
        )
        drawn: dict[UUID, int] = {}
        for plan, request in zip(plans, requests):
            assert plan.allocated == request.quantity
            for line in plan.lines:
                drawn[line.batch_id] = drawn.get(line.batch_id, 0) + line.quantity
        by_id = {b.batch_id: b for b in batches}
        for batch_id, total in drawn.items():
            assert total <= by_id[batch_id].quantity
