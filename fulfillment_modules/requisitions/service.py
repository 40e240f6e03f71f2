"""
Requisitions Module Service (``fulfillment_modules.requisitions.service``).

Responsibility
--------------
Purchase request intake, multi-level approval driven by amount-band rules,
and conversion of an approved request into a draft purchase order.

Architecture position
---------------------
**Modules layer** -- ``RequisitionService`` resolves rules through
``fulfillment_engines.approval`` and raises purchase orders through
``ProcurementService.stage_purchase_order`` so the conversion commits as
one transaction.

Invariants enforced
-------------------
* Each public method owns the transaction boundary.
* A request with no applicable rule is approved on submission with an
  empty approval list.
* A single rejection rejects the request regardless of other levels.
* A request is converted at most once.

Failure modes
-------------
* ``NotFoundError`` -- unknown request, or no pending approval at a level.
* ``InvalidStateTransitionError`` -- operation illegal from the current state.
* ``AlreadyConvertedError`` -- second conversion attempt.
* ``ValueError`` -- empty line list, bad rule bands, conversion without a
  supplier.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_engines.approval import (
    ApprovalDecisionStatus,
    evaluate_approval_status,
    select_applicable_rules,
)
from fulfillment_kernel.domain.actors import SYSTEM_ACTOR_ID
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.documents import PURCHASE_REQUEST, document_number
from fulfillment_kernel.exceptions import (
    AlreadyConvertedError,
    FulfillmentError,
    NotFoundError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_modules.inventory.orm import ProductModel
from fulfillment_modules.procurement.config import ProcurementConfig
from fulfillment_modules.procurement.models import PurchaseOrder, PurchaseOrderLine
from fulfillment_modules.procurement.service import ProcurementService
from fulfillment_modules.requisitions.models import (
    Approval,
    ApprovalRule,
    PurchaseRequest,
    PurchaseRequestLine,
)
from fulfillment_modules.requisitions.orm import (
    ApprovalRuleModel,
    PurchaseRequestApprovalModel,
    PurchaseRequestItemModel,
    PurchaseRequestModel,
)
from fulfillment_modules.requisitions.workflows import PURCHASE_REQUEST_WORKFLOW

logger = get_logger("modules.requisitions.service")


class RequisitionService:
    """
    Orchestrates purchase request approval and conversion.

    Usage::

        service = RequisitionService(session, clock=clock)
        pr = service.create_purchase_request(requester_id, lines, supplier_id=supplier)
        pr, approvals = service.submit_with_approval(pr.id)
        pr, approval, done = service.approve_level(pr.id, 1, approver_id)
        pr, po = service.convert_to_purchase_order(pr.id, actor_id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ProcurementConfig | None = None,
        procurement: ProcurementService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ProcurementConfig.with_defaults()
        self._procurement = procurement or ProcurementService(
            session, clock=self._clock, config=self._config,
        )

    # =========================================================================
    # Rules and requests
    # =========================================================================

    def register_approval_rule(
        self,
        currency: str,
        amount_range_min: Decimal,
        level: int,
        actor_id: UUID,
        amount_range_max: Decimal | None = None,
        approver_role: str | None = None,
        specific_approver_id: UUID | None = None,
        entity_type: str | None = None,
    ) -> ApprovalRule:
        if level < 1:
            raise ValueError(f"Approval level must be >= 1, got {level}")
        if amount_range_min < 0:
            raise ValueError("amount_range_min cannot be negative")
        if amount_range_max is not None and amount_range_max < amount_range_min:
            raise ValueError("amount_range_max must not be below amount_range_min")
        try:
            rule = ApprovalRuleModel(
                id=uuid4(),
                entity_type=entity_type or self._config.approval_entity_type,
                currency=currency.upper(),
                amount_range_min=amount_range_min,
                amount_range_max=amount_range_max,
                level=level,
                approver_role=approver_role,
                specific_approver_id=specific_approver_id,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(rule)
            self._session.flush()
            self._session.commit()
            logger.info(
                "approval_rule_registered",
                extra={
                    "rule_id": str(rule.id),
                    "level": level,
                    "currency": rule.currency,
                    "amount_range_min": str(amount_range_min),
                    "amount_range_max": (
                        str(amount_range_max) if amount_range_max is not None else None
                    ),
                },
            )
            return rule.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def create_purchase_request(
        self,
        requester_id: UUID,
        lines: Sequence[PurchaseRequestLine],
        currency: str = "USD",
        supplier_id: UUID | None = None,
        notes: str | None = None,
    ) -> PurchaseRequest:
        """Create a ``draft`` request; the total is the sum of its lines."""
        if not lines:
            raise ValueError("A purchase request needs at least one line")
        try:
            pr = PurchaseRequestModel(
                id=uuid4(),
                pr_number=document_number(PURCHASE_REQUEST, self._clock.today()),
                requester_id=requester_id,
                supplier_id=supplier_id,
                currency=currency.upper(),
                status=PURCHASE_REQUEST_WORKFLOW.initial_state,
                notes=notes,
                created_by_id=requester_id,
            )
            total = Decimal("0")
            for idx, line in enumerate(lines, start=1):
                if self._session.get(ProductModel, line.product_id) is None:
                    raise NotFoundError("Product", line.product_id)
                line_total = line.estimated_unit_price * line.quantity
                total += line_total
                pr.items.append(
                    PurchaseRequestItemModel(
                        id=uuid4(),
                        line_number=idx,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        estimated_unit_price=line.estimated_unit_price,
                        total_price=line_total,
                        created_by_id=requester_id,
                    )
                )
            pr.total_amount = total
            self._session.add(pr)
            self._session.flush()
            self._session.commit()
            logger.info(
                "purchase_request_created",
                extra={
                    "pr_id": str(pr.id),
                    "pr_number": pr.pr_number,
                    "total_amount": str(total),
                    "currency": pr.currency,
                },
            )
            return pr.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Approval
    # =========================================================================

    def submit_with_approval(
        self,
        pr_id: UUID,
        actor_id: UUID | None = None,
    ) -> tuple[PurchaseRequest, list[Approval]]:
        """
        ``draft -> submitted`` with one pending approval per applicable rule.

        With no applicable rule the request continues straight to
        ``approved``.
        """
        with LogContext.bind(document_id=pr_id, actor_id=actor_id):
            logger.info("purchase_request_submit_started", extra={"pr_id": str(pr_id)})
            try:
                pr = self._lock_request(pr_id)
                PURCHASE_REQUEST_WORKFLOW.require_transition(pr.status, "submitted", pr.id)

                entity_type = self._config.approval_entity_type
                rules = self._session.scalars(
                    select(ApprovalRuleModel).where(
                        ApprovalRuleModel.entity_type == entity_type,
                        ApprovalRuleModel.is_active.is_(True),
                    )
                )
                applicable = select_applicable_rules(
                    rules=[rule.to_spec() for rule in rules],
                    entity_type=entity_type,
                    currency=pr.currency,
                    amount=pr.total_amount,
                )

                now = self._clock.now_utc()
                pr.status = "submitted"
                pr.submitted_at = now
                pr.updated_by_id = actor_id
                approvals = []
                for level_rule in applicable:
                    approval = PurchaseRequestApprovalModel(
                        id=uuid4(),
                        pr_id=pr.id,
                        rule_id=level_rule.rule_id,
                        level=level_rule.level,
                        status=ApprovalDecisionStatus.PENDING.value,
                        approver_role=level_rule.approver_role,
                        approver_id=level_rule.specific_approver_id,
                        created_by_id=actor_id or pr.requester_id,
                    )
                    self._session.add(approval)
                    approvals.append(approval)
                self._session.flush()

                if not approvals:
                    PURCHASE_REQUEST_WORKFLOW.require_transition(pr.status, "approved", pr.id)
                    pr.status = "approved"
                    pr.approved_at = now
                    self._session.flush()

                self._session.commit()
                logger.info(
                    "purchase_request_submit_committed",
                    extra={
                        "pr_id": str(pr.id),
                        "pr_number": pr.pr_number,
                        "status": pr.status,
                        "approval_count": len(approvals),
                        "levels": sorted({a.level for a in approvals}),
                    },
                )
                return pr.to_dto(), [a.to_dto() for a in approvals]
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_request_submit_rejected",
                    extra={"pr_id": str(pr_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def approve_level(
        self,
        pr_id: UUID,
        level: int,
        approver_id: UUID,
        comment: str | None = None,
    ) -> tuple[PurchaseRequest, Approval, bool]:
        """
        Approve every pending approval at ``level``.

        Returns ``(request, approval, fully_approved)``; the request becomes
        ``approved`` once no level is pending.
        """
        with LogContext.bind(document_id=pr_id, actor_id=approver_id):
            try:
                pr = self._lock_request(pr_id)
                PURCHASE_REQUEST_WORKFLOW.require_state(
                    pr.status, ("submitted",), "approved", pr.id,
                )
                pending = self._lock_pending(pr.id, level)
                now = self._clock.now_utc()
                for approval in pending:
                    approval.status = ApprovalDecisionStatus.APPROVED.value
                    approval.decided_by = approver_id
                    approval.decided_at = now
                    approval.comment = comment
                    approval.updated_by_id = approver_id
                self._session.flush()

                outcome = evaluate_approval_status(
                    [(a.level, a.status) for a in self._approvals(pr.id)]
                )
                if outcome.is_approved:
                    PURCHASE_REQUEST_WORKFLOW.require_transition(pr.status, "approved", pr.id)
                    pr.status = "approved"
                    pr.approved_at = now
                    pr.updated_by_id = approver_id
                    self._session.flush()

                self._session.commit()
                logger.info(
                    "purchase_request_level_approved",
                    extra={
                        "pr_id": str(pr.id),
                        "level": level,
                        "fully_approved": outcome.is_approved,
                        "pending_levels": list(outcome.pending_levels),
                    },
                )
                return pr.to_dto(), pending[0].to_dto(), outcome.is_approved
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_request_approve_rejected",
                    extra={"pr_id": str(pr_id), "level": level, "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def reject_level(
        self,
        pr_id: UUID,
        level: int,
        approver_id: UUID,
        comment: str | None = None,
    ) -> tuple[PurchaseRequest, Approval]:
        """Reject at ``level``; the whole request becomes ``rejected``."""
        with LogContext.bind(document_id=pr_id, actor_id=approver_id):
            try:
                pr = self._lock_request(pr_id)
                PURCHASE_REQUEST_WORKFLOW.require_transition(pr.status, "rejected", pr.id)
                pending = self._lock_pending(pr.id, level)
                now = self._clock.now_utc()
                for approval in pending:
                    approval.status = ApprovalDecisionStatus.REJECTED.value
                    approval.decided_by = approver_id
                    approval.decided_at = now
                    approval.comment = comment
                    approval.updated_by_id = approver_id
                pr.status = "rejected"
                pr.updated_by_id = approver_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "purchase_request_rejected",
                    extra={"pr_id": str(pr.id), "level": level},
                )
                return pr.to_dto(), pending[0].to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_request_reject_failed",
                    extra={"pr_id": str(pr_id), "level": level, "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Conversion and cancellation
    # =========================================================================

    def convert_to_purchase_order(
        self,
        pr_id: UUID,
        actor_id: UUID,
    ) -> tuple[PurchaseRequest, PurchaseOrder]:
        """``approved -> converted``, raising a draft PO in the same transaction."""
        with LogContext.bind(document_id=pr_id, actor_id=actor_id):
            try:
                pr = self._lock_request(pr_id)
                if pr.status == "converted":
                    raise AlreadyConvertedError(pr.id, pr.converted_po_id)
                PURCHASE_REQUEST_WORKFLOW.require_transition(pr.status, "converted", pr.id)
                if pr.supplier_id is None:
                    raise ValueError(
                        f"Purchase request {pr.pr_number} has no supplier to order from"
                    )

                po = self._procurement.stage_purchase_order(
                    supplier_id=pr.supplier_id,
                    lines=[
                        PurchaseOrderLine(
                            product_id=item.product_id,
                            quantity=item.quantity,
                            unit_price=item.estimated_unit_price,
                        )
                        for item in pr.items
                    ],
                    actor_id=actor_id,
                    currency=pr.currency,
                    pr_id=pr.id,
                    notes=f"Raised from {pr.pr_number}",
                )
                pr.status = "converted"
                pr.converted_po_id = po.id
                pr.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()
                logger.info(
                    "purchase_request_converted",
                    extra={
                        "pr_id": str(pr.id),
                        "pr_number": pr.pr_number,
                        "po_id": str(po.id),
                        "order_number": po.order_number,
                    },
                )
                return pr.to_dto(), po.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_request_convert_rejected",
                    extra={"pr_id": str(pr_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    def cancel_purchase_request(
        self,
        pr_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> PurchaseRequest:
        with LogContext.bind(document_id=pr_id, actor_id=actor_id):
            try:
                pr = self._lock_request(pr_id)
                PURCHASE_REQUEST_WORKFLOW.require_transition(pr.status, "cancelled", pr.id)
                pr.status = "cancelled"
                note = f"Cancelled: {reason}" if reason else "Cancelled"
                pr.notes = f"{pr.notes}\n{note}" if pr.notes else note
                pr.updated_by_id = actor_id or SYSTEM_ACTOR_ID
                self._session.flush()
                self._session.commit()
                logger.info(
                    "purchase_request_cancelled",
                    extra={"pr_id": str(pr.id), "reason": reason},
                )
                return pr.to_dto()
            except FulfillmentError as exc:
                self._session.rollback()
                logger.warning(
                    "purchase_request_cancel_rejected",
                    extra={"pr_id": str(pr_id), "code": exc.code},
                )
                raise
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_purchase_request(self, pr_id: UUID) -> PurchaseRequest:
        pr = self._session.get(PurchaseRequestModel, pr_id, populate_existing=True)
        if pr is None:
            raise NotFoundError("PurchaseRequest", pr_id)
        return pr.to_dto()

    def approvals_for_request(self, pr_id: UUID) -> list[Approval]:
        return [a.to_dto() for a in self._approvals(pr_id)]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_request(self, pr_id: UUID) -> PurchaseRequestModel:
        pr = self._session.get(
            PurchaseRequestModel,
            pr_id,
            with_for_update=True,
            populate_existing=True,
        )
        if pr is None:
            raise NotFoundError("PurchaseRequest", pr_id)
        return pr

    def _lock_pending(self, pr_id: UUID, level: int) -> list[PurchaseRequestApprovalModel]:
        stmt = (
            select(PurchaseRequestApprovalModel)
            .where(
                PurchaseRequestApprovalModel.pr_id == pr_id,
                PurchaseRequestApprovalModel.level == level,
                PurchaseRequestApprovalModel.status == ApprovalDecisionStatus.PENDING.value,
            )
            .order_by(PurchaseRequestApprovalModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        pending = list(self._session.scalars(stmt))
        if not pending:
            raise NotFoundError("PurchaseRequestApproval", f"{pr_id}:level-{level}")
        return pending

    def _approvals(self, pr_id: UUID) -> list[PurchaseRequestApprovalModel]:
        stmt = (
            select(PurchaseRequestApprovalModel)
            .where(PurchaseRequestApprovalModel.pr_id == pr_id)
            .order_by(PurchaseRequestApprovalModel.level, PurchaseRequestApprovalModel.id)
            .execution_options(populate_existing=True)
        )
        return list(self._session.scalars(stmt))
