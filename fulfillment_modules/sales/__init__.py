"""
Sales Module (``fulfillment_modules.sales``).

Responsibility
--------------
Order-to-cash for physical goods: sales orders, FEFO allocation on
confirm, stock consumption on fulfill, invoices, returns with credit notes.

Invariants enforced
-------------------
* Status changes follow ``SALES_ORDER_WORKFLOW`` only.
* Fulfillment is all-or-nothing across lines.
* One invoice per order; credit notes carry negative amounts.
"""

from fulfillment_modules.sales.config import SalesConfig
from fulfillment_modules.sales.models import (
    Allocation,
    Invoice,
    InvoiceStatus,
    ReturnLine,
    SalesOrder,
    SalesOrderItem,
    SalesOrderLine,
    SalesOrderStatus,
)
from fulfillment_modules.sales.service import SalesOrderService
from fulfillment_modules.sales.workflows import SALES_ORDER_WORKFLOW

__all__ = [
    "Allocation",
    "Invoice",
    "InvoiceStatus",
    "ReturnLine",
    "SALES_ORDER_WORKFLOW",
    "SalesConfig",
    "SalesOrder",
    "SalesOrderItem",
    "SalesOrderLine",
    "SalesOrderService",
    "SalesOrderStatus",
]
