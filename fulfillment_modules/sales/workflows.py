"""
Sales Workflows.

State machine for sales order processing.  The same table is enforced by
``SalesOrderService`` and by the ORM ``before_update`` listener.
"""

from fulfillment_kernel.domain.workflow import Guard, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_ALLOCATABLE = Guard(
    name="stock_allocatable",
    description="Every line can be allocated from non-expired stock",
)

NOT_INVOICED = Guard(
    name="not_invoiced",
    description="No invoice references the order yet",
)


# -----------------------------------------------------------------------------
# Sales Order Workflow
# -----------------------------------------------------------------------------

SALES_ORDER_WORKFLOW = Workflow(
    name="sales_order",
    description="Sales order lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "confirmed",
        "shipped",
        "delivered",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "confirmed", action="confirm", guard=STOCK_ALLOCATABLE),
        Transition("confirmed", "shipped", action="fulfill", guard=STOCK_ALLOCATABLE, moves_stock=True),
        Transition("shipped", "delivered", action="invoice", guard=NOT_INVOICED),
        Transition("draft", "cancelled", action="cancel"),
        Transition("confirmed", "cancelled", action="cancel"),
    ),
    terminal_states=("delivered", "cancelled"),
)

# Operations legal in a state without changing it
INVOICEABLE_STATES = ("shipped", "delivered")
RETURNABLE_STATES = ("delivered",)

logger.info(
    "sales_order_workflow_registered",
    extra={
        "workflow_name": SALES_ORDER_WORKFLOW.name,
        "state_count": len(SALES_ORDER_WORKFLOW.states),
        "transition_count": len(SALES_ORDER_WORKFLOW.transitions),
        "initial_state": SALES_ORDER_WORKFLOW.initial_state,
    },
)
