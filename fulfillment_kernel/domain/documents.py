"""Human-readable document numbers: ``PREFIX-YYYYMMDD-XXXXXX``."""

from datetime import date
from uuid import uuid4

SALES_ORDER = "SO"
INVOICE = "INV"
CREDIT_NOTE = "CN"
PURCHASE_ORDER = "PO"
GOODS_RECEIPT = "GR"
PURCHASE_REQUEST = "PR"
VENDOR_BILL = "BILL"
RETURN_BATCH = "RET"


def document_number(prefix: str, on: date) -> str:
    """Dated document number with a random six-character suffix."""
    return f"{prefix}-{on:%Y%m%d}-{uuid4().hex[:6].upper()}"
