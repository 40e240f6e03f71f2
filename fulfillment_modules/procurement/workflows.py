"""
Procurement Workflows.

State machines for purchase orders and goods receipts.
"""

from fulfillment_kernel.domain.workflow import Guard, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Posted receipts cover the ordered quantity",
)

THREE_WAY_MATCHED = Guard(
    name="three_way_matched",
    description="PO, receipts and bill agree within tolerance (or were resolved)",
)

EXPIRY_IN_FUTURE = Guard(
    name="expiry_in_future",
    description="Every dated receipt line expires after the posting date",
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "sent",
        "confirmed",
        "received",
        "closed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "sent", action="send"),
        Transition("sent", "confirmed", action="confirm"),
        Transition("confirmed", "received", action="receive", guard=ALL_LINES_RECEIVED),
        Transition("received", "closed", action="close", guard=THREE_WAY_MATCHED),
        Transition("draft", "cancelled", action="cancel"),
        Transition("sent", "cancelled", action="cancel"),
        Transition("confirmed", "cancelled", action="cancel"),
        Transition("received", "cancelled", action="cancel"),
    ),
    terminal_states=("closed", "cancelled"),
)

# States in which receipts may be created and posted
RECEIVABLE_STATES = ("confirmed", "received")

# States in which PO key fields are frozen
LOCKED_STATES = ("confirmed", "received", "closed")

logger.info(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Goods Receipt Workflow
# -----------------------------------------------------------------------------

GOODS_RECEIPT_WORKFLOW = Workflow(
    name="goods_receipt",
    description="Goods receipt posting",
    initial_state="draft",
    states=("draft", "posted"),
    transitions=(
        Transition("draft", "posted", action="post", guard=EXPIRY_IN_FUTURE, moves_stock=True),
    ),
    terminal_states=("posted",),
)

logger.info(
    "goods_receipt_workflow_registered",
    extra={
        "workflow_name": GOODS_RECEIPT_WORKFLOW.name,
        "state_count": len(GOODS_RECEIPT_WORKFLOW.states),
        "transition_count": len(GOODS_RECEIPT_WORKFLOW.transitions),
    },
)
