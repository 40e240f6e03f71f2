"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock and document errors must be handled precisely. Callers decide whether
to retry with adjusted input or surface the problem to a user, and they do
that by catching a type and reading structured attributes, never by parsing
message strings.

Every exception:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as instance attributes

Example:
    try:
        sales.fulfill(order_id, warehouse_id)
    except InsufficientStockError as e:
        api_response(code=e.code, required=e.required, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentError (base)
    |
    +-- NotFoundError
    |
    +-- WorkflowError
    |   +-- InvalidStateTransitionError
    |   +-- AlreadyInvoicedError
    |   +-- AlreadyPostedError
    |   +-- AlreadyConvertedError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- ExpiredBatchError
    |   +-- ExpiredOnReceiptError
    |   +-- ReturnQuantityExceededError
    |
    +-- ImmutabilityError
    |   +-- ImmutableFieldError
    |   +-- ImmutabilityViolationError
    |
    +-- ExchangeRateError
        +-- ExchangeRateUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | When Raised
--------------|----------------------------|-------------------------------------------
Lookup        | NOT_FOUND                  | Entity id does not exist
--------------|----------------------------|-------------------------------------------
Workflow      | INVALID_STATE_TRANSITION   | Transition not in the workflow table
              | ALREADY_INVOICED           | Order already has an invoice
              | ALREADY_POSTED             | Goods receipt already posted
              | ALREADY_CONVERTED          | Purchase request already converted
--------------|----------------------------|-------------------------------------------
Stock         | INSUFFICIENT_STOCK         | Requested quantity exceeds sellable stock
              | EXPIRED_BATCH              | Explicit allocation of an expired batch
              | EXPIRED_ON_RECEIPT         | Receiving stock that is already expired
              | RETURN_QUANTITY_EXCEEDED   | Return larger than the shipped quantity
--------------|----------------------------|-------------------------------------------
Immutability  | IMMUTABLE_FIELD            | Key field changed on a confirmed PO
              | IMMUTABILITY_VIOLATION     | Stock movement update/delete, batch delete
--------------|----------------------------|-------------------------------------------
FX            | EXCHANGE_RATE_UNAVAILABLE  | Rate provider has no rate for the pair

All of these are recoverable at the caller's discretion. None of them
represents a programmer error; invalid argument values raise ``ValueError``.
"""

from __future__ import annotations

from datetime import date


class FulfillmentError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FULFILLMENT_ERROR"


# Lookup


class NotFoundError(FulfillmentError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} not found: {entity_id}")


# Workflow exceptions


class WorkflowError(FulfillmentError):
    """Base exception for document lifecycle errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidStateTransitionError(WorkflowError):
    """The requested transition is not in the document's workflow table."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity: str,
        from_state: str | None,
        to_state: str,
        entity_id: object | None = None,
    ):
        self.entity = entity
        self.entity_id = str(entity_id) if entity_id is not None else None
        self.from_state = from_state
        self.to_state = to_state
        suffix = f" ({entity_id})" if entity_id is not None else ""
        super().__init__(
            f"Invalid {entity} transition{suffix}: {from_state} -> {to_state}"
        )


class AlreadyInvoicedError(WorkflowError):
    """An invoice already references the sales order."""

    code: str = "ALREADY_INVOICED"

    def __init__(self, order_id: object, invoice_id: object):
        self.order_id = str(order_id)
        self.invoice_id = str(invoice_id)
        super().__init__(
            f"Sales order {order_id} is already invoiced by {invoice_id}"
        )


class AlreadyPostedError(WorkflowError):
    """The goods receipt has already been posted."""

    code: str = "ALREADY_POSTED"

    def __init__(self, receipt_id: object):
        self.receipt_id = str(receipt_id)
        super().__init__(f"Goods receipt already posted: {receipt_id}")


class AlreadyConvertedError(WorkflowError):
    """The purchase request has already been converted to a purchase order."""

    code: str = "ALREADY_CONVERTED"

    def __init__(self, pr_id: object, po_id: object | None):
        self.pr_id = str(pr_id)
        self.po_id = str(po_id) if po_id is not None else None
        super().__init__(
            f"Purchase request {pr_id} already converted to purchase order {po_id}"
        )


# Stock exceptions


class StockError(FulfillmentError):
    """Base exception for batch ledger errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds the available (sellable) quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        required: int,
        available: int,
        product_id: object | None = None,
        warehouse_id: object | None = None,
        batch_id: object | None = None,
    ):
        self.required = required
        self.available = available
        self.product_id = str(product_id) if product_id is not None else None
        self.warehouse_id = str(warehouse_id) if warehouse_id is not None else None
        self.batch_id = str(batch_id) if batch_id is not None else None
        where = f" for product {product_id}" if product_id is not None else ""
        if batch_id is not None:
            where += f" in batch {batch_id}"
        super().__init__(
            f"Insufficient stock{where}: required {required}, available {available}"
        )


class ExpiredBatchError(StockError):
    """An explicitly requested batch is past its expiry date."""

    code: str = "EXPIRED_BATCH"

    def __init__(self, batch_id: object, expiry_date: date):
        self.batch_id = str(batch_id)
        self.expiry_date = expiry_date
        super().__init__(f"Batch {batch_id} expired on {expiry_date.isoformat()}")


class ExpiredOnReceiptError(StockError):
    """A goods receipt line carries an expiry date that is not in the future."""

    code: str = "EXPIRED_ON_RECEIPT"

    def __init__(
        self,
        receipt_id: object,
        product_id: object,
        batch_number: str | None,
        expiry_date: date,
    ):
        self.receipt_id = str(receipt_id)
        self.product_id = str(product_id)
        self.batch_number = batch_number
        self.expiry_date = expiry_date
        super().__init__(
            f"Receipt {receipt_id} line for product {product_id} "
            f"(batch {batch_number}) expired on {expiry_date.isoformat()}"
        )


class ReturnQuantityExceededError(StockError):
    """A return line is larger than the quantity still eligible for return."""

    code: str = "RETURN_QUANTITY_EXCEEDED"

    def __init__(
        self,
        order_id: object,
        product_id: object,
        requested: int,
        returnable: int,
    ):
        self.order_id = str(order_id)
        self.product_id = str(product_id)
        self.requested = requested
        self.returnable = returnable
        super().__init__(
            f"Return of {requested} units of product {product_id} on order "
            f"{order_id} exceeds returnable quantity {returnable}"
        )


# Immutability exceptions


class ImmutabilityError(FulfillmentError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutableFieldError(ImmutabilityError):
    """A key field was changed on a document that no longer allows it."""

    code: str = "IMMUTABLE_FIELD"

    def __init__(self, entity: str, entity_id: object, field: str, status: str):
        self.entity = entity
        self.entity_id = str(entity_id)
        self.field = field
        self.status = status
        super().__init__(
            f"Cannot change {field} on {entity} {entity_id} in status {status}"
        )


class ImmutabilityViolationError(ImmutabilityError):
    """An append-only record was updated or a ledger row was deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: object, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Exchange rate exceptions


class ExchangeRateError(FulfillmentError):
    """Base exception for exchange rate errors."""

    code: str = "EXCHANGE_RATE_ERROR"


class ExchangeRateUnavailableError(ExchangeRateError):
    """The rate provider could not supply a rate for the currency pair."""

    code: str = "EXCHANGE_RATE_UNAVAILABLE"

    def __init__(self, from_currency: str, to_currency: str, as_of: date | None = None):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        when = f" as of {as_of.isoformat()}" if as_of else ""
        super().__init__(
            f"No exchange rate available for {from_currency}/{to_currency}{when}"
        )
