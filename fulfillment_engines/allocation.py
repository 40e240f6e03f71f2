"""
Module: fulfillment_engines.allocation
Responsibility:
    Decide which stock batches satisfy a requested quantity of one product,
    under a selection policy: FEFO (first-expired-first-out, the default)
    or an explicitly named batch.  Produces an ordered allocation plan; it
    never touches stock itself.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fulfillment_kernel exceptions and domain types.

Invariants enforced:
    - A plan's lines sum exactly to the requested quantity.
    - FEFO never selects an expired batch (expiry_date < as_of) and never
      selects a batch with non-positive quantity.
    - FEFO order: expiry ascending with undated batches last, then larger
      quantity first (fewer splits), then batch number and id.
    - ``allocate_many`` draws from one shared pool so two lines for the same
      product never count the same units twice.
    - Purity: no clock access; ``as_of`` is passed in by the caller.

Failure modes:
    - ValueError if the requested quantity is not a positive integer.
    - InsufficientStockError when non-expired stock cannot cover the request.
    - ExpiredBatchError when an explicit batch is past its expiry date.
    - NotFoundError when an explicit batch is not among the candidates.

Usage:
    from fulfillment_engines.allocation import AllocationEngine, BatchCandidate

    engine = AllocationEngine()
    plan = engine.allocate(
        candidates=[b1, b2],
        quantity=8,
        as_of=date(2024, 12, 1),
    )
    # plan.lines -> (AllocationLine(B1, 5), AllocationLine(B2, 3))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from uuid import UUID

from fulfillment_engines.tracer import traced_engine
from fulfillment_kernel.exceptions import (
    ExpiredBatchError,
    InsufficientStockError,
    NotFoundError,
)
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationPolicy(str, Enum):
    """Batch selection policy."""

    FEFO = "fefo"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class BatchCandidate:
    """Snapshot of one batch as seen by the allocator."""

    batch_id: UUID
    product_id: UUID
    warehouse_id: UUID
    batch_number: str
    quantity: int
    expiry_date: date | None = None

    def is_expired(self, as_of: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < as_of

    def is_sellable(self, as_of: date) -> bool:
        return self.quantity > 0 and not self.is_expired(as_of)


@dataclass(frozen=True)
class AllocationLine:
    """Quantity drawn from one batch."""

    batch_id: UUID
    batch_number: str
    product_id: UUID
    quantity: int
    expiry_date: date | None = None


@dataclass(frozen=True)
class AllocationRequest:
    """One line of a multi-line allocation."""

    product_id: UUID
    quantity: int
    batch_id: UUID | None = None

    @property
    def policy(self) -> AllocationPolicy:
        return AllocationPolicy.EXPLICIT if self.batch_id else AllocationPolicy.FEFO


@dataclass(frozen=True)
class AllocationPlan:
    """Ordered allocation for one requested quantity."""

    product_id: UUID | None
    requested: int
    policy: AllocationPolicy
    lines: tuple[AllocationLine, ...]

    @property
    def allocated(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def split_count(self) -> int:
        return len(self.lines)

    def as_pairs(self) -> list[tuple[UUID, int]]:
        return [(line.batch_id, line.quantity) for line in self.lines]


def fefo_sort_key(candidate: BatchCandidate) -> tuple:
    """Sort key implementing FEFO ordering with deterministic tie-breaks."""
    return (
        candidate.expiry_date is None,
        candidate.expiry_date or date.max,
        -candidate.quantity,
        candidate.batch_number,
        str(candidate.batch_id),
    )


def _require_positive_quantity(quantity: object) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValueError(f"Quantity must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise ValueError(f"Quantity must be positive, got {quantity}")


class AllocationEngine:
    """
    Pure batch allocator.

    Contract:
        Stateless; safe to share.  Callers pass the candidate batches for
        one product and warehouse (extra products are filtered out when
        ``product_id`` is given) and the business date used for expiry.
    """

    @traced_engine(
        "allocation",
        "1.0",
        fingerprint_fields=("quantity", "policy", "as_of", "batch_id"),
    )
    def allocate(
        self,
        *,
        candidates: Sequence[BatchCandidate],
        quantity: int,
        as_of: date,
        policy: AllocationPolicy = AllocationPolicy.FEFO,
        batch_id: UUID | None = None,
        product_id: UUID | None = None,
        warehouse_id: UUID | None = None,
    ) -> AllocationPlan:
        """
        Allocate ``quantity`` units from ``candidates``.

        Raises:
            ValueError: quantity is not a positive int, or EXPLICIT without
                a batch_id.
            InsufficientStockError: not enough non-expired stock.
            ExpiredBatchError: EXPLICIT batch is expired.
            NotFoundError: EXPLICIT batch not among candidates.
        """
        _require_positive_quantity(quantity)
        if product_id is not None:
            candidates = [c for c in candidates if c.product_id == product_id]

        if policy == AllocationPolicy.EXPLICIT:
            if batch_id is None:
                raise ValueError("Explicit allocation requires a batch_id")
            plan = self._allocate_explicit(candidates, quantity, as_of, batch_id, product_id)
        elif policy == AllocationPolicy.FEFO:
            plan = self._allocate_fefo(candidates, quantity, as_of, product_id, warehouse_id)
        else:
            raise ValueError(f"Unknown allocation policy: {policy}")

        logger.debug(
            "allocation_planned",
            extra={
                "product_id": str(product_id) if product_id else None,
                "requested": quantity,
                "policy": policy.value,
                "split_count": plan.split_count,
            },
        )
        return plan

    def allocate_many(
        self,
        *,
        candidates: Sequence[BatchCandidate],
        requests: Sequence[AllocationRequest],
        as_of: date,
        warehouse_id: UUID | None = None,
    ) -> tuple[AllocationPlan, ...]:
        """
        Allocate several lines against one shared pool of batches.

        Each successful line reduces the pool before the next line is
        planned.  Fails on the first line that cannot be satisfied.
        """
        if not requests:
            raise ValueError("At least one allocation request is required")

        pool: dict[UUID, BatchCandidate] = {c.batch_id: c for c in candidates}
        plans: list[AllocationPlan] = []
        for request in requests:
            plan = self.allocate(
                candidates=list(pool.values()),
                quantity=request.quantity,
                as_of=as_of,
                policy=request.policy,
                batch_id=request.batch_id,
                product_id=request.product_id,
                warehouse_id=warehouse_id,
            )
            for line in plan.lines:
                current = pool[line.batch_id]
                pool[line.batch_id] = replace(
                    current, quantity=current.quantity - line.quantity
                )
            plans.append(plan)
        return tuple(plans)

    # ------------------------------------------------------------------

    def _allocate_fefo(
        self,
        candidates: Sequence[BatchCandidate],
        quantity: int,
        as_of: date,
        product_id: UUID | None,
        warehouse_id: UUID | None,
    ) -> AllocationPlan:
        eligible = sorted(
            (c for c in candidates if c.is_sellable(as_of)),
            key=fefo_sort_key,
        )
        available = sum(c.quantity for c in eligible)
        if available < quantity:
            raise InsufficientStockError(
                required=quantity,
                available=available,
                product_id=product_id,
                warehouse_id=warehouse_id,
            )

        lines: list[AllocationLine] = []
        remaining = quantity
        for candidate in eligible:
            if remaining == 0:
                break
            take = min(candidate.quantity, remaining)
            lines.append(
                AllocationLine(
                    batch_id=candidate.batch_id,
                    batch_number=candidate.batch_number,
                    product_id=candidate.product_id,
                    quantity=take,
                    expiry_date=candidate.expiry_date,
                )
            )
            remaining -= take

        return AllocationPlan(
            product_id=product_id,
            requested=quantity,
            policy=AllocationPolicy.FEFO,
            lines=tuple(lines),
        )

    def _allocate_explicit(
        self,
        candidates: Sequence[BatchCandidate],
        quantity: int,
        as_of: date,
        batch_id: UUID,
        product_id: UUID | None,
    ) -> AllocationPlan:
        candidate = next((c for c in candidates if c.batch_id == batch_id), None)
        if candidate is None:
            raise NotFoundError("Batch", batch_id)
        if candidate.is_expired(as_of):
            raise ExpiredBatchError(candidate.batch_id, candidate.expiry_date)
        if candidate.quantity < quantity:
            raise InsufficientStockError(
                required=quantity,
                available=max(candidate.quantity, 0),
                product_id=candidate.product_id,
                warehouse_id=candidate.warehouse_id,
                batch_id=candidate.batch_id,
            )
        return AllocationPlan(
            product_id=product_id or candidate.product_id,
            requested=quantity,
            policy=AllocationPolicy.EXPLICIT,
            lines=(
                AllocationLine(
                    batch_id=candidate.batch_id,
                    batch_number=candidate.batch_number,
                    product_id=candidate.product_id,
                    quantity=quantity,
                    expiry_date=candidate.expiry_date,
                ),
            ),
        )
