"""
fulfillment_services.core -- The ``FulfillmentCore`` facade.

Responsibility:
    Creates every module service exactly once over one injected session,
    clock, configuration and FX provider, and exposes the state-transition
    operations callers drive.  ``bootstrap`` turns loaded settings into a
    session factory with logging configured and integrity listeners
    registered.

Architecture position:
    Services -- top of the stack.  May import from modules, engines, the
    kernel and ``fulfillment_config``.  Nothing imports from here.

Invariants enforced:
    - Single-instance lifecycle: one service per module per core, all
      sharing the same Session and Clock.
    - No global storage: the session is supplied by the caller.
    - Every operation returns frozen DTOs.

Failure modes:
    - Whatever the underlying service raises; the facade adds no handling.

Usage:
    settings = load_settings("deploy.yaml")
    factory = bootstrap(settings)
    with factory() as session:
        core = FulfillmentCore(session, settings=settings, fx_provider=rates)
        order, allocations = core.confirm_sales_order(order_id)
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from fulfillment_config import FulfillmentSettings
from fulfillment_engines.allocation import AllocationEngine
from fulfillment_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    make_session_factory,
)
from fulfillment_kernel.db.immutability import register_immutability_listeners
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.fx import ExchangeRateProvider
from fulfillment_kernel.logging_config import configure_logging, get_logger
from fulfillment_modules.inventory import InventoryConfig, InventoryService, StockMovement
from fulfillment_modules.procurement import (
    GoodsReceipt,
    MatchResult,
    ProcurementConfig,
    ProcurementService,
)
from fulfillment_modules.requisitions import (
    Approval,
    PurchaseRequest,
    RequisitionService,
)
from fulfillment_modules.sales import (
    Allocation,
    Invoice,
    ReturnLine,
    SalesConfig,
    SalesOrder,
    SalesOrderService,
)

logger = get_logger("services.core")


def bootstrap(
    settings: FulfillmentSettings,
    create_schema: bool = False,
) -> sessionmaker[Session]:
    """Configure logging, build the engine and return a session factory."""
    configure_logging(level=settings.logging.level)
    db = settings.database
    engine = create_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    if create_schema:
        create_tables(engine)
    register_immutability_listeners()
    logger.info(
        "fulfillment_bootstrapped",
        extra={"dialect": engine.dialect.name, "checksum": settings.checksum},
    )
    return make_session_factory(engine)


class FulfillmentCore:
    """Central factory and facade for the module services.

    Contract:
        Receives a Session plus optional Clock, settings (or explicit module
        configs) and ExchangeRateProvider.  Explicit configs win over the
        settings sections, which win over the module defaults.

    Non-goals:
        - Does NOT manage transaction boundaries; each service method does.
        - Does NOT own the Session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: FulfillmentSettings | None = None,
        fx_provider: ExchangeRateProvider | None = None,
        inventory_config: InventoryConfig | None = None,
        sales_config: SalesConfig | None = None,
        procurement_config: ProcurementConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()

        if inventory_config is None:
            inventory_config = (
                InventoryConfig.from_dict(settings.module("inventory"))
                if settings is not None
                else InventoryConfig.with_defaults()
            )
        if sales_config is None:
            sales_config = (
                SalesConfig.from_dict(settings.module("sales"))
                if settings is not None
                else SalesConfig.with_defaults()
            )
        if procurement_config is None:
            procurement_config = (
                ProcurementConfig.from_dict(settings.module("procurement"))
                if settings is not None
                else ProcurementConfig.with_defaults()
            )

        self.inventory = InventoryService(session, clock=self._clock, config=inventory_config)
        self.sales = SalesOrderService(
            session,
            clock=self._clock,
            config=sales_config,
            allocator=AllocationEngine(),
        )
        self.procurement = ProcurementService(
            session,
            clock=self._clock,
            config=procurement_config,
            fx_provider=fx_provider,
        )
        self.requisitions = RequisitionService(
            session,
            clock=self._clock,
            config=procurement_config,
            procurement=self.procurement,
        )
        logger.info(
            "fulfillment_core_initialized",
            extra={"fx_provider": type(fx_provider).__name__ if fx_provider else None},
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    def confirm_sales_order(
        self,
        order_id: UUID,
        actor_id: UUID | None = None,
    ) -> tuple[SalesOrder, list[Allocation]]:
        return self.sales.confirm(order_id, actor_id=actor_id)

    def fulfill_sales_order(
        self,
        order_id: UUID,
        warehouse_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[SalesOrder, list[StockMovement]]:
        return self.sales.fulfill(order_id, warehouse_id=warehouse_id, actor_id=actor_id)

    def generate_invoice(self, order_id: UUID, actor_id: UUID | None = None) -> Invoice:
        return self.sales.generate_invoice(order_id, actor_id=actor_id)

    def process_return(
        self,
        order_id: UUID,
        items: Sequence[ReturnLine],
        warehouse_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[Invoice, list[StockMovement]]:
        return self.sales.process_return(
            order_id, items, warehouse_id=warehouse_id, actor_id=actor_id,
        )

    def cancel_sales_order(
        self,
        order_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> SalesOrder:
        return self.sales.cancel(order_id, reason=reason, actor_id=actor_id)

    # -------------------------------------------------------------------------
    # Procurement
    # -------------------------------------------------------------------------

    def post_goods_receipt(self, receipt_id: UUID, actor_id: UUID | None = None) -> GoodsReceipt:
        return self.procurement.post_goods_receipt(receipt_id, actor_id=actor_id)

    def perform_three_way_match(self, po_id: UUID, actor_id: UUID | None = None) -> MatchResult:
        return self.procurement.perform_three_way_match(po_id, actor_id=actor_id)

    # -------------------------------------------------------------------------
    # Requisitions
    # -------------------------------------------------------------------------

    def submit_purchase_request(
        self,
        pr_id: UUID,
        actor_id: UUID | None = None,
    ) -> tuple[PurchaseRequest, list[Approval]]:
        return self.requisitions.submit_with_approval(pr_id, actor_id=actor_id)

    def approve_level(
        self,
        pr_id: UUID,
        level: int,
        approver_id: UUID,
        comment: str | None = None,
    ) -> tuple[PurchaseRequest, Approval, bool]:
        return self.requisitions.approve_level(pr_id, level, approver_id, comment=comment)
