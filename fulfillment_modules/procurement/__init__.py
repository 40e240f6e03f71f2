"""
Procurement Module (``fulfillment_modules.procurement``).

Responsibility
--------------
Procure-to-pay for physical goods: purchase orders, goods receipts posted
into the batch ledger, vendor bills and three-way matching.

Invariants enforced
-------------------
* PO status changes follow ``PURCHASE_ORDER_WORKFLOW`` only.
* PO key fields are immutable from ``confirmed`` onward.
* A goods receipt is posted at most once.
* One evolving match result per PO.
"""

from fulfillment_modules.procurement.config import ProcurementConfig
from fulfillment_modules.procurement.models import (
    BillStatus,
    GoodsReceipt,
    GoodsReceiptItem,
    MatchResult,
    MatchStatus,
    POStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderLine,
    ReceiptLine,
    ReceiptStatus,
    VendorBill,
)
from fulfillment_modules.procurement.service import ProcurementService
from fulfillment_modules.procurement.workflows import (
    GOODS_RECEIPT_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
)

__all__ = [
    "BillStatus",
    "GOODS_RECEIPT_WORKFLOW",
    "GoodsReceipt",
    "GoodsReceiptItem",
    "MatchResult",
    "MatchStatus",
    "POStatus",
    "PURCHASE_ORDER_WORKFLOW",
    "ProcurementConfig",
    "ProcurementService",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "PurchaseOrderLine",
    "ReceiptLine",
    "ReceiptStatus",
    "VendorBill",
]
