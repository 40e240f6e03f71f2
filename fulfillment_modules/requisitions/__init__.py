"""
Requisitions Module (``fulfillment_modules.requisitions``).

Responsibility
--------------
Purchase requests, amount-band approval rules, per-level approvals and
conversion of approved requests into purchase orders.
"""

from fulfillment_modules.requisitions.models import (
    Approval,
    ApprovalRule,
    ApprovalStatus,
    PurchaseRequest,
    PurchaseRequestItem,
    PurchaseRequestLine,
    PurchaseRequestStatus,
)
from fulfillment_modules.requisitions.service import RequisitionService
from fulfillment_modules.requisitions.workflows import PURCHASE_REQUEST_WORKFLOW

__all__ = [
    "Approval",
    "ApprovalRule",
    "ApprovalStatus",
    "PURCHASE_REQUEST_WORKFLOW",
    "PurchaseRequest",
    "PurchaseRequestItem",
    "PurchaseRequestLine",
    "PurchaseRequestStatus",
    "RequisitionService",
]
