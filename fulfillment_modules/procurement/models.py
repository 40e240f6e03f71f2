"""
Procurement Domain Models.

The nouns of procure-to-pay: purchase orders, goods receipts, vendor bills
and their three-way match result.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fulfillment_engines.matching import ThreeWayMatchStatus
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.models")

MatchStatus = ThreeWayMatchStatus


class POStatus(Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ReceiptStatus(Enum):
    """Goods receipt states."""
    DRAFT = "draft"
    POSTED = "posted"


class BillStatus(Enum):
    """Vendor bill states."""
    DRAFT = "draft"
    POSTED = "posted"
    PAID = "paid"
    CANCELLED = "cancelled"


def _positive_int(value: object, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{what} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class PurchaseOrderLine:
    """Requested line when creating a purchase order."""
    product_id: UUID
    quantity: int
    unit_price: Decimal

    def __post_init__(self):
        _positive_int(self.quantity, "Line quantity")
        if self.unit_price < 0:
            raise ValueError(f"Unit price cannot be negative: {self.unit_price}")


@dataclass(frozen=True)
class ReceiptLine:
    """Quantity of one product physically received.

    ``batch_number`` defaults to one derived from the receipt number.
    """
    product_id: UUID
    quantity: int
    batch_number: str | None = None
    expiry_date: date | None = None
    manufacture_date: date | None = None

    def __post_init__(self):
        _positive_int(self.quantity, "Receipt quantity")


@dataclass(frozen=True)
class PurchaseOrderItem:
    """A line item on a purchase order."""
    id: UUID
    po_id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PurchaseOrder:
    """A purchase order to a supplier."""
    id: UUID
    order_number: str
    supplier_id: UUID
    status: POStatus
    order_date: date
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    pr_id: UUID | None = None
    expected_delivery_date: date | None = None
    delivery_date: date | None = None
    notes: str | None = None
    items: tuple[PurchaseOrderItem, ...] = field(default_factory=tuple)

    @property
    def ordered_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass(frozen=True)
class GoodsReceiptItem:
    """A line on a goods receipt."""
    id: UUID
    gr_id: UUID
    product_id: UUID
    quantity: int
    batch_number: str
    expiry_date: date | None = None
    manufacture_date: date | None = None
    batch_id: UUID | None = None


@dataclass(frozen=True)
class GoodsReceipt:
    """Physical receipt of goods against a purchase order."""
    id: UUID
    gr_number: str
    po_id: UUID
    warehouse_id: UUID
    status: ReceiptStatus
    received_by: UUID
    received_at: datetime
    posted_at: datetime | None = None
    items: tuple[GoodsReceiptItem, ...] = field(default_factory=tuple)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass(frozen=True)
class VendorBill:
    """A supplier's bill, optionally tied to a purchase order."""
    id: UUID
    bill_number: str
    supplier_id: UUID
    total_amount: Decimal
    currency: str
    status: BillStatus
    bill_date: date
    po_id: UUID | None = None
    due_date: date | None = None


@dataclass(frozen=True)
class MatchResult:
    """Three-way match outcome for one purchase order."""
    id: UUID
    po_id: UUID
    status: ThreeWayMatchStatus
    quantity_variance: Decimal
    price_variance: Decimal
    gr_id: UUID | None = None
    bill_id: UUID | None = None
    match_details: dict[str, Any] = field(default_factory=dict)
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    notes: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_by is not None
