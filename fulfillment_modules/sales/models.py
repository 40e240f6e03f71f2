"""
Sales Domain Models.

The nouns of order-to-cash: sales orders, their lines, allocations,
invoices and credit notes.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.sales.models")


class SalesOrderStatus(Enum):
    """Sales order lifecycle states."""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class InvoiceStatus(Enum):
    """Invoice lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SalesOrderLine:
    """Requested line when creating an order.

    ``unit_price`` defaults to the product list price.  ``batch_id`` pins
    the line to one batch (explicit allocation) instead of FEFO.
    """
    product_id: UUID
    quantity: int
    unit_price: Decimal | None = None
    batch_id: UUID | None = None

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError(f"Line quantity must be a positive integer, got {self.quantity!r}")
        if self.unit_price is not None and self.unit_price < 0:
            raise ValueError(f"Unit price cannot be negative: {self.unit_price}")


@dataclass(frozen=True)
class ReturnLine:
    """Quantity of one product coming back from the customer."""
    product_id: UUID
    quantity: int

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError(f"Return quantity must be a positive integer, got {self.quantity!r}")


@dataclass(frozen=True)
class SalesOrderItem:
    """A line item on a sales order."""
    id: UUID
    order_id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    returned_quantity: int = 0
    batch_id: UUID | None = None

    @property
    def returnable_quantity(self) -> int:
        return self.quantity - self.returned_quantity


@dataclass(frozen=True)
class SalesOrder:
    """A customer sales order."""
    id: UUID
    order_number: str
    customer_id: UUID
    warehouse_id: UUID
    status: SalesOrderStatus
    order_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    delivery_date: date | None = None
    notes: str | None = None
    items: tuple[SalesOrderItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Allocation:
    """Units of one order item drawn from one batch."""
    item_id: UUID
    product_id: UUID
    batch_id: UUID
    batch_number: str
    quantity: int
    expiry_date: date | None = None


@dataclass(frozen=True)
class Invoice:
    """An invoice or (with negative amounts) a credit note."""
    id: UUID
    invoice_number: str
    customer_id: UUID
    sales_order_id: UUID
    invoice_date: date
    due_date: date
    status: InvoiceStatus
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    is_credit_note: bool = False
    notes: str | None = None
