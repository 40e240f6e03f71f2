"""
Inventory Module (``fulfillment_modules.inventory``).

Responsibility
--------------
Products, the batch ledger and its append-only movement trail, stock
corrections and stock queries.

Invariants enforced
-------------------
* Batch quantity never negative.
* Every ledger delta paired with exactly one stock movement.
* Stock movements never updated or deleted; batches never deleted.
"""

from fulfillment_modules.inventory.config import InventoryConfig
from fulfillment_modules.inventory.ledger import BatchLedger
from fulfillment_modules.inventory.models import (
    Batch,
    MovementType,
    Product,
    StockMovement,
)
from fulfillment_modules.inventory.service import InventoryService

__all__ = [
    "Batch",
    "BatchLedger",
    "InventoryConfig",
    "InventoryService",
    "MovementType",
    "Product",
    "StockMovement",
]
