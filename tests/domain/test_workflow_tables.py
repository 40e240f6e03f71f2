"""
Structural tests for the document state machines.

Every workflow table is checked for internal consistency, and the legal /
illegal transitions named by the lifecycle rules are asserted directly.
"""

import pytest

from fulfillment_kernel.domain.workflow import Transition, Workflow
from fulfillment_kernel.exceptions import InvalidStateTransitionError
from fulfillment_modules.procurement.workflows import (
    GOODS_RECEIPT_WORKFLOW,
    LOCKED_STATES,
    PURCHASE_ORDER_WORKFLOW,
)
from fulfillment_modules.requisitions.workflows import PURCHASE_REQUEST_WORKFLOW
from fulfillment_modules.sales.workflows import SALES_ORDER_WORKFLOW

ALL_WORKFLOWS = [
    SALES_ORDER_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
    GOODS_RECEIPT_WORKFLOW,
    PURCHASE_REQUEST_WORKFLOW,
]


@pytest.mark.parametrize("workflow", ALL_WORKFLOWS, ids=lambda w: w.name)
class TestWorkflowStructure:
    """Invariants every workflow table must satisfy."""

    def test_initial_state_declared(self, workflow):
        assert workflow.initial_state in workflow.states

    def test_transitions_reference_declared_states(self, workflow):
        for t in workflow.transitions:
            assert t.from_state in workflow.states
            assert t.to_state in workflow.states

    def test_terminal_states_have_no_exits(self, workflow):
        for state in workflow.terminal_states:
            assert workflow.allowed_targets(state) == ()

    def test_every_state_reachable_from_initial(self, workflow):
        reached = {workflow.initial_state}
        frontier = [workflow.initial_state]
        while frontier:
            state = frontier.pop()
            for target in workflow.allowed_targets(state):
                if target not in reached:
                    reached.add(target)
                    frontier.append(target)
        assert reached == set(workflow.states)

    def test_transitions_unique(self, workflow):
        pairs = [(t.from_state, t.to_state) for t in workflow.transitions]
        assert len(pairs) == len(set(pairs))


class TestSalesOrderTransitions:

    @pytest.mark.parametrize("from_state,to_state", [
        ("draft", "confirmed"),
        ("confirmed", "shipped"),
        ("shipped", "delivered"),
        ("draft", "cancelled"),
        ("confirmed", "cancelled"),
    ])
    def test_legal(self, from_state, to_state):
        assert SALES_ORDER_WORKFLOW.can_transition(from_state, to_state)

    @pytest.mark.parametrize("from_state,to_state", [
        ("draft", "shipped"),
        ("shipped", "cancelled"),
        ("delivered", "cancelled"),
        ("cancelled", "confirmed"),
        ("confirmed", "draft"),
    ])
    def test_illegal(self, from_state, to_state):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            SALES_ORDER_WORKFLOW.require_transition(from_state, to_state)
        assert exc_info.value.entity == "sales_order"
        assert exc_info.value.from_state == from_state
        assert exc_info.value.to_state == to_state

    def test_only_fulfillment_moves_stock(self):
        movers = [t for t in SALES_ORDER_WORKFLOW.transitions if t.moves_stock]
        assert [(t.from_state, t.to_state) for t in movers] == [("confirmed", "shipped")]


class TestPurchaseOrderTransitions:

    def test_happy_path(self):
        path = ["draft", "sent", "confirmed", "received", "closed"]
        for src, dst in zip(path, path[1:]):
            assert PURCHASE_ORDER_WORKFLOW.can_transition(src, dst)

    @pytest.mark.parametrize("state", ["draft", "sent", "confirmed", "received"])
    def test_cancel_from_any_open_state(self, state):
        assert PURCHASE_ORDER_WORKFLOW.can_transition(state, "cancelled")

    def test_closed_is_final(self):
        assert not PURCHASE_ORDER_WORKFLOW.can_transition("closed", "cancelled")

    def test_locked_states_start_at_confirmed(self):
        assert LOCKED_STATES == ("confirmed", "received", "closed")


class TestPurchaseRequestTransitions:

    def test_conversion_only_from_approved(self):
        assert PURCHASE_REQUEST_WORKFLOW.allowed_targets("approved") == ("converted",)

    def test_rejected_is_final(self):
        assert PURCHASE_REQUEST_WORKFLOW.allowed_targets("rejected") == ()


class TestWorkflowValidation:
    """Malformed tables are rejected at definition time."""

    def test_undeclared_state(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_terminal_state_with_exit(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="back"),),
                terminal_states=("b",),
            )

    def test_require_state(self):
        with pytest.raises(InvalidStateTransitionError):
            GOODS_RECEIPT_WORKFLOW.require_state("posted", ("draft",), "posted")
