"""
ORM-Level Integrity Enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here check the ledger and document
rules on every flush, whatever code path produced the change:

    session.flush()
         |
         v
    [before_update] --> status / field checks --> InvalidStateTransitionError
         |                                         ImmutableFieldError
         v                                         ImmutabilityViolationError
    [before_delete] --> ledger checks ------------^
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity                  | Rule
------------------------|------------------------------------------------
StockMovement           | Append-only: never updated, never deleted
Batch                   | Never deleted (quantity may reach zero)
SalesOrder              | status follows SALES_ORDER_WORKFLOW
PurchaseOrder           | status follows PURCHASE_ORDER_WORKFLOW; key fields
                        | frozen once confirmed
PurchaseOrderItem       | frozen while the parent PO is confirmed or later
GoodsReceipt            | status follows GOODS_RECEIPT_WORKFLOW; frozen once
                        | posted
PurchaseRequest         | status follows PURCHASE_REQUEST_WORKFLOW

Status is checked through attribute history, so a single flush may carry
one transition per row.  Services that chain two transitions flush in
between.

Usage::

    from fulfillment_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; repeat calls are no-ops

To temporarily disable (TESTS ONLY)::

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from fulfillment_kernel.exceptions import (
    ImmutabilityViolationError,
    ImmutableFieldError,
    InvalidStateTransitionError,
)
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Audit metadata is always writable
_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _previous_value(target, name):
    """Value of ``name`` as it stood before the pending change, if any."""
    history = get_history(target, name)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, name)


def _changed_fields(mapper, target) -> list[str]:
    changed = []
    for attr in mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def _check_status_transition(workflow, target) -> None:
    history = get_history(target, "status")
    if not history.deleted or not history.added:
        return
    old, new = history.deleted[0], history.added[0]
    if old == new:
        return
    if not workflow.can_transition(old, new):
        logger.error(
            "status_transition_blocked",
            extra={
                "workflow": workflow.name,
                "entity_id": str(target.id),
                "from_state": old,
                "to_state": new,
            },
        )
        raise InvalidStateTransitionError(workflow.name, old, new, target.id)


# ---------------------------------------------------------------------------
# Stock movements and batches
# ---------------------------------------------------------------------------


def _check_stock_movement_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=target.id,
        reason="Stock movements are append-only",
    )


def _check_stock_movement_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=target.id,
        reason="Stock movements cannot be deleted",
    )


def _check_batch_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Batch",
        entity_id=target.id,
        reason="Batches are never deleted; correct them with an adjustment",
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def _check_sales_order_update(mapper, connection, target):
    from fulfillment_modules.sales.workflows import SALES_ORDER_WORKFLOW

    _check_status_transition(SALES_ORDER_WORKFLOW, target)


def _check_purchase_order_update(mapper, connection, target):
    """Validate the transition, then freeze key fields of a locked PO.

    The lock is judged on the status *before* this flush, so the
    confirming update itself goes through.
    """
    from fulfillment_modules.procurement.orm import PO_KEY_FIELDS
    from fulfillment_modules.procurement.workflows import (
        LOCKED_STATES,
        PURCHASE_ORDER_WORKFLOW,
    )

    _check_status_transition(PURCHASE_ORDER_WORKFLOW, target)

    previous = _previous_value(target, "status")
    if previous not in LOCKED_STATES:
        return
    for name in PO_KEY_FIELDS:
        if get_history(target, name).has_changes():
            logger.error(
                "purchase_order_key_field_blocked",
                extra={"po_id": str(target.id), "field": name, "status": previous},
            )
            raise ImmutableFieldError("PurchaseOrder", target.id, name, previous)


def _check_purchase_order_item_update(mapper, connection, target):
    from fulfillment_modules.procurement.workflows import LOCKED_STATES

    parent = target.purchase_order
    if parent is None:
        return
    previous = _previous_value(parent, "status")
    if previous in LOCKED_STATES:
        changed = _changed_fields(mapper, target)
        if changed:
            raise ImmutableFieldError(
                "PurchaseOrderItem", target.id, changed[0], previous,
            )


def _check_goods_receipt_update(mapper, connection, target):
    from fulfillment_modules.procurement.workflows import GOODS_RECEIPT_WORKFLOW

    _check_status_transition(GOODS_RECEIPT_WORKFLOW, target)
    if _previous_value(target, "status") == "posted":
        changed = _changed_fields(mapper, target)
        if changed:
            raise ImmutabilityViolationError(
                entity_type="GoodsReceipt",
                entity_id=target.id,
                reason=f"Posted receipts are immutable (attempted: {', '.join(changed)})",
            )


def _check_purchase_request_update(mapper, connection, target):
    from fulfillment_modules.requisitions.workflows import PURCHASE_REQUEST_WORKFLOW

    _check_status_transition(PURCHASE_REQUEST_WORKFLOW, target)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listeners():
    from fulfillment_modules.inventory.orm import BatchModel, StockMovementModel
    from fulfillment_modules.procurement.orm import (
        GoodsReceiptModel,
        PurchaseOrderItemModel,
        PurchaseOrderModel,
    )
    from fulfillment_modules.requisitions.orm import PurchaseRequestModel
    from fulfillment_modules.sales.orm import SalesOrderModel

    return (
        (StockMovementModel, "before_update", _check_stock_movement_update),
        (StockMovementModel, "before_delete", _check_stock_movement_delete),
        (BatchModel, "before_delete", _check_batch_delete),
        (SalesOrderModel, "before_update", _check_sales_order_update),
        (PurchaseOrderModel, "before_update", _check_purchase_order_update),
        (PurchaseOrderItemModel, "before_update", _check_purchase_order_item_update),
        (GoodsReceiptModel, "before_update", _check_goods_receipt_update),
        (PurchaseRequestModel, "before_update", _check_purchase_request_update),
    )


def register_immutability_listeners():
    """
    Register all integrity listeners.

    Call after the ORM models are importable and before any flush.
    Idempotent.
    """
    registered = 0
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
            registered += 1
    logger.info("immutability_listeners_registered", extra={"count": registered})


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it is not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove all integrity listeners.

    WARNING: Only use this in tests that intentionally break the rules to
    verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.info("immutability_listeners_unregistered")
