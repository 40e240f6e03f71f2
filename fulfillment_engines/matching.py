"""
fulfillment_engines.matching -- Three-way match of purchase order, receipt and bill.

Responsibility:
    Classify the reconciliation state of one purchase order given the
    quantity received on its posted goods receipts and the total of its
    vendor bill (already converted into the PO currency).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The procurement service
    gathers the documents, converts currencies through the FX port and
    persists the resulting MatchResult.

Invariants enforced:
    - Decimal-only arithmetic; tolerances are computed, never hard-coded
      at call sites.
    - Quantity tolerance = quantity_percent of the ordered quantity.
    - Price tolerance = max(price_percent of PO total, price_minimum).
    - A variance equal to its tolerance is within tolerance.
    - Quantity mismatch takes precedence over price mismatch.
    - Identical inputs produce identical outputs.

Failure modes:
    - ValueError if a tolerance percentage or minimum is negative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from fulfillment_engines.tracer import traced_engine
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

_HUNDRED = Decimal("100")


class ThreeWayMatchStatus(str, Enum):
    """Reconciliation state of a purchase order."""

    PENDING = "pending"
    MATCHED = "matched"
    QUANTITY_MISMATCH = "quantity_mismatch"
    PRICE_MISMATCH = "price_mismatch"
    MISSING_RECEIPT = "missing_receipt"
    MISSING_BILL = "missing_bill"


@dataclass(frozen=True)
class MatchTolerance:
    """Tolerance policy for three-way matching."""

    quantity_percent: Decimal = Decimal("2")
    price_percent: Decimal = Decimal("5")
    price_minimum: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        for name in ("quantity_percent", "price_percent", "price_minimum"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    def quantity_tolerance(self, ordered_quantity: Decimal) -> Decimal:
        return abs(ordered_quantity) * self.quantity_percent / _HUNDRED

    def price_tolerance(self, po_total: Decimal) -> Decimal:
        return max(abs(po_total) * self.price_percent / _HUNDRED, self.price_minimum)


@dataclass(frozen=True)
class ThreeWayMatchEvaluation:
    """Outcome of one match evaluation."""

    status: ThreeWayMatchStatus
    quantity_variance: Decimal = Decimal("0")
    price_variance: Decimal = Decimal("0")
    quantity_tolerance: Decimal = Decimal("0")
    price_tolerance: Decimal = Decimal("0")
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_matched(self) -> bool:
        return self.status == ThreeWayMatchStatus.MATCHED


@traced_engine(
    "three_way_match",
    "1.0",
    fingerprint_fields=(
        "ordered_quantity",
        "received_quantity",
        "po_total",
        "bill_total",
    ),
)
def evaluate_three_way_match(
    *,
    ordered_quantity: int | Decimal,
    po_total: Decimal,
    received_quantity: int | Decimal | None,
    bill_total: Decimal | None,
    tolerance: MatchTolerance | None = None,
) -> ThreeWayMatchEvaluation:
    """
    Classify a PO against its receipts and bill.

    Args:
        ordered_quantity: Sum of PO line quantities.
        po_total: PO total amount.
        received_quantity: Sum over posted receipts, or None if the PO has
            no posted receipt.
        bill_total: Bill total in the PO currency, or None if no bill.
        tolerance: Tolerance policy; defaults to 2% / 5% / 0.01.
    """
    tolerance = tolerance or MatchTolerance()

    if received_quantity is None and bill_total is None:
        return ThreeWayMatchEvaluation(
            status=ThreeWayMatchStatus.PENDING,
            details={"reason": "no receipt and no bill"},
        )
    if bill_total is None:
        return ThreeWayMatchEvaluation(
            status=ThreeWayMatchStatus.MISSING_BILL,
            details={"reason": "receipt posted, bill not recorded"},
        )
    if received_quantity is None:
        return ThreeWayMatchEvaluation(
            status=ThreeWayMatchStatus.MISSING_RECEIPT,
            details={"reason": "bill recorded, no posted receipt"},
        )

    ordered = Decimal(ordered_quantity)
    received = Decimal(received_quantity)
    quantity_variance = abs(ordered - received)
    price_variance = abs(po_total - bill_total)
    qty_tol = tolerance.quantity_tolerance(ordered)
    price_tol = tolerance.price_tolerance(po_total)

    if quantity_variance > qty_tol:
        status = ThreeWayMatchStatus.QUANTITY_MISMATCH
    elif price_variance > price_tol:
        status = ThreeWayMatchStatus.PRICE_MISMATCH
    else:
        status = ThreeWayMatchStatus.MATCHED

    details = {
        "ordered_quantity": str(ordered),
        "received_quantity": str(received),
        "po_total": str(po_total),
        "bill_total": str(bill_total),
        "quantity_tolerance": str(qty_tol),
        "price_tolerance": str(price_tol),
    }
    logger.debug(
        "three_way_match_evaluated",
        extra={"status": status.value, **details},
    )
    return ThreeWayMatchEvaluation(
        status=status,
        quantity_variance=quantity_variance,
        price_variance=price_variance,
        quantity_tolerance=qty_tol,
        price_tolerance=price_tol,
        details=details,
    )
