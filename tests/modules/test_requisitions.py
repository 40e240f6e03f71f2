"""
Tests for purchase requests and their approval chain.

Tests cover:
- Rule registration validation
- Submission with no applicable rule goes straight to approved
- Multi-level approval: pending until every level approves
- A single rejection rejects the request
- Conversion raises a draft PO once, carrying the request's lines
- Cancellation and illegal transitions
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_kernel.exceptions import (
    AlreadyConvertedError,
    InvalidStateTransitionError,
    NotFoundError,
)
from fulfillment_modules.procurement.models import POStatus
from fulfillment_modules.requisitions.models import (
    ApprovalStatus,
    PurchaseRequestLine,
    PurchaseRequestStatus,
)


@pytest.fixture
def make_request(requisitions, product, supplier_id):
    """A draft request for ``quantity`` x ``price``."""

    def _make(quantity: int = 10, price: str = "50.00", currency: str = "USD",
              supplier=supplier_id):
        return requisitions.create_purchase_request(
            uuid4(),
            [PurchaseRequestLine(product.id, quantity, Decimal(price))],
            currency=currency,
            supplier_id=supplier,
        )

    return _make


@pytest.fixture
def two_level_rules(requisitions, actor_id):
    """Level 1 from 0, level 2 from 1000 (USD)."""
    requisitions.register_approval_rule("USD", Decimal("0"), 1, actor_id, approver_role="manager")
    requisitions.register_approval_rule(
        "USD", Decimal("1000"), 2, actor_id, approver_role="director",
    )


class TestApprovalRules:

    def test_register(self, requisitions, actor_id):
        rule = requisitions.register_approval_rule(
            "usd", Decimal("100"), 1, actor_id, amount_range_max=Decimal("500"),
        )
        assert rule.currency == "USD"
        assert rule.entity_type == "purchase_request"
        assert rule.is_active is True

    @pytest.mark.parametrize("kwargs", [
        {"amount_range_min": Decimal("0"), "level": 0},
        {"amount_range_min": Decimal("-1"), "level": 1},
        {"amount_range_min": Decimal("100"), "level": 1, "amount_range_max": Decimal("50")},
    ])
    def test_invalid_rules(self, requisitions, actor_id, kwargs):
        with pytest.raises(ValueError):
            requisitions.register_approval_rule("USD", actor_id=actor_id, **kwargs)


class TestSubmission:

    def test_total_from_lines(self, make_request):
        pr = make_request(quantity=4, price="12.50")
        assert pr.status == PurchaseRequestStatus.DRAFT
        assert pr.total_amount == Decimal("50.00")
        assert pr.pr_number.startswith("PR-")

    def test_no_rules_auto_approves(self, requisitions, make_request):
        pr = make_request()
        submitted, approvals = requisitions.submit_with_approval(pr.id)
        assert approvals == []
        assert submitted.status == PurchaseRequestStatus.APPROVED
        assert submitted.approved_at is not None

    def test_rules_in_other_currency_ignored(self, requisitions, make_request, actor_id):
        requisitions.register_approval_rule("EUR", Decimal("0"), 1, actor_id)
        submitted, approvals = requisitions.submit_with_approval(make_request().id)
        assert approvals == []
        assert submitted.status == PurchaseRequestStatus.APPROVED

    def test_applicable_levels_only(self, requisitions, make_request, two_level_rules):
        submitted, approvals = requisitions.submit_with_approval(make_request().id)
        assert submitted.status == PurchaseRequestStatus.SUBMITTED
        assert [a.level for a in approvals] == [1]
        assert approvals[0].status == ApprovalStatus.PENDING
        assert approvals[0].approver_role == "manager"

    def test_resubmit_rejected(self, requisitions, make_request):
        pr = make_request()
        requisitions.submit_with_approval(pr.id)
        with pytest.raises(InvalidStateTransitionError):
            requisitions.submit_with_approval(pr.id)


class TestMultiLevelApproval:

    def test_all_levels_required(self, requisitions, make_request, two_level_rules):
        pr = make_request(quantity=30)
        _, approvals = requisitions.submit_with_approval(pr.id)
        assert [a.level for a in approvals] == [1, 2]

        approver = uuid4()
        after_first, decision, done = requisitions.approve_level(pr.id, 1, approver, "ok")
        assert done is False
        assert after_first.status == PurchaseRequestStatus.SUBMITTED
        assert decision.status == ApprovalStatus.APPROVED
        assert decision.decided_by == approver
        assert decision.comment == "ok"

        after_second, _, done = requisitions.approve_level(pr.id, 2, uuid4())
        assert done is True
        assert after_second.status == PurchaseRequestStatus.APPROVED
        assert all(
            a.status == ApprovalStatus.APPROVED
            for a in requisitions.approvals_for_request(pr.id)
        )

    def test_unknown_level(self, requisitions, make_request, two_level_rules):
        pr = make_request()
        requisitions.submit_with_approval(pr.id)
        with pytest.raises(NotFoundError):
            requisitions.approve_level(pr.id, 2, uuid4())

    def test_rejection_rejects_request(self, requisitions, make_request, two_level_rules):
        pr = make_request(quantity=30)
        requisitions.submit_with_approval(pr.id)
        requisitions.approve_level(pr.id, 1, uuid4())

        rejected, decision = requisitions.reject_level(pr.id, 2, uuid4(), "over budget")
        assert rejected.status == PurchaseRequestStatus.REJECTED
        assert decision.status == ApprovalStatus.REJECTED

        with pytest.raises(InvalidStateTransitionError):
            requisitions.approve_level(pr.id, 2, uuid4())

    def test_approve_draft_rejected(self, requisitions, make_request):
        pr = make_request()
        with pytest.raises(InvalidStateTransitionError):
            requisitions.approve_level(pr.id, 1, uuid4())


class TestConversion:

    def test_convert_raises_draft_po(self, requisitions, procurement, make_request, actor_id,
                                     supplier_id, product):
        pr = make_request(quantity=6, price="20.00")
        requisitions.submit_with_approval(pr.id)

        converted, po = requisitions.convert_to_purchase_order(pr.id, actor_id)
        assert converted.status == PurchaseRequestStatus.CONVERTED
        assert converted.converted_po_id == po.id
        assert po.status == POStatus.DRAFT
        assert po.pr_id == pr.id
        assert po.supplier_id == supplier_id
        assert po.total_amount == Decimal("120.00")
        assert [(i.product_id, i.quantity) for i in po.items] == [(product.id, 6)]
        assert procurement.get_purchase_order(po.id).notes == f"Raised from {pr.pr_number}"

    def test_second_conversion_rejected(self, requisitions, make_request, actor_id):
        pr = make_request()
        requisitions.submit_with_approval(pr.id)
        _, po = requisitions.convert_to_purchase_order(pr.id, actor_id)

        with pytest.raises(AlreadyConvertedError) as exc_info:
            requisitions.convert_to_purchase_order(pr.id, actor_id)
        assert exc_info.value.po_id == str(po.id)

    def test_unapproved_not_convertible(self, requisitions, make_request, two_level_rules,
                                        actor_id):
        pr = make_request()
        requisitions.submit_with_approval(pr.id)
        with pytest.raises(InvalidStateTransitionError):
            requisitions.convert_to_purchase_order(pr.id, actor_id)

    def test_missing_supplier(self, requisitions, make_request, actor_id):
        pr = make_request(supplier=None)
        requisitions.submit_with_approval(pr.id)
        with pytest.raises(ValueError):
            requisitions.convert_to_purchase_order(pr.id, actor_id)
        assert requisitions.get_purchase_request(pr.id).status == PurchaseRequestStatus.APPROVED


class TestCancellation:

    def test_cancel_draft(self, requisitions, make_request):
        pr = make_request()
        cancelled = requisitions.cancel_purchase_request(pr.id, reason="duplicate")
        assert cancelled.status == PurchaseRequestStatus.CANCELLED

    def test_cancel_approved_rejected(self, requisitions, make_request):
        pr = make_request()
        requisitions.submit_with_approval(pr.id)
        with pytest.raises(InvalidStateTransitionError):
            requisitions.cancel_purchase_request(pr.id)

    def test_unknown_request(self, requisitions):
        with pytest.raises(NotFoundError):
            requisitions.get_purchase_request(uuid4())
