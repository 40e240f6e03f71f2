"""
Requisition Workflows.

State machine for purchase requests.
"""

from fulfillment_kernel.domain.workflow import Guard, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.requisitions.workflows")


NO_PENDING_APPROVALS = Guard(
    name="no_pending_approvals",
    description="Every approval level has been approved",
)

HAS_SUPPLIER = Guard(
    name="has_supplier",
    description="A supplier is set so a purchase order can be raised",
)


PURCHASE_REQUEST_WORKFLOW = Workflow(
    name="purchase_request",
    description="Purchase request approval lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "approved",
        "rejected",
        "converted",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "submitted", action="submit"),
        Transition("submitted", "approved", action="approve", guard=NO_PENDING_APPROVALS),
        Transition("submitted", "rejected", action="reject"),
        Transition("approved", "converted", action="convert", guard=HAS_SUPPLIER),
        Transition("draft", "cancelled", action="cancel"),
        Transition("submitted", "cancelled", action="cancel"),
    ),
    terminal_states=("rejected", "converted", "cancelled"),
)

logger.info(
    "purchase_request_workflow_registered",
    extra={
        "workflow_name": PURCHASE_REQUEST_WORKFLOW.name,
        "state_count": len(PURCHASE_REQUEST_WORKFLOW.states),
        "transition_count": len(PURCHASE_REQUEST_WORKFLOW.transitions),
        "initial_state": PURCHASE_REQUEST_WORKFLOW.initial_state,
    },
)
