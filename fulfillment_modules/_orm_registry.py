"""
Module ORM Registry (``fulfillment_modules._orm_registry``).

Responsibility
--------------
Import every ``fulfillment_modules.*.orm`` module so ``Base.metadata``
holds all table definitions before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``fulfillment_kernel.db.engine.create_tables`` / ``drop_tables``.
"""


def import_all_orm_models() -> None:
    """Register all module ORM models.  Idempotent."""
    # Inventory first: the other modules reference products and batches
    import fulfillment_modules.inventory.orm  # noqa: F401
    import fulfillment_modules.procurement.orm  # noqa: F401
    import fulfillment_modules.requisitions.orm  # noqa: F401
    import fulfillment_modules.sales.orm  # noqa: F401
