"""
Inventory Domain Models.

The nouns of stock: products, batches and the movements that change them.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.inventory.models")


class MovementType(Enum):
    """Direction of a ledger mutation."""
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class Product:
    """A sellable item."""
    id: UUID
    sku: str
    name: str
    unit_price: Decimal | None = None
    shelf_life_days: int | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Batch:
    """A quantity of one product in one warehouse sharing expiry and cost."""
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    batch_number: str
    quantity: int
    manufacture_date: date | None = None
    expiry_date: date | None = None
    cost_per_unit: Decimal | None = None

    def __post_init__(self):
        if self.quantity < 0:
            logger.warning(
                "batch_negative_quantity",
                extra={"batch_id": str(self.id), "quantity": self.quantity},
            )
            raise ValueError(f"Batch quantity cannot be negative: {self.quantity}")

    def is_expired(self, as_of: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < as_of


@dataclass(frozen=True)
class StockMovement:
    """Append-only record of one signed ledger delta."""
    id: UUID
    product_id: UUID
    warehouse_id: UUID
    batch_id: UUID
    movement_type: MovementType
    quantity: int
    reference: str | None = None
    notes: str | None = None
    actor_id: UUID | None = None
    created_at: datetime | None = None
