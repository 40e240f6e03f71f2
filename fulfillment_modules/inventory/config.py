"""
Inventory Configuration Schema.

Defaults for inventory queries.  Values are loaded from the ``inventory``
section of the YAML settings at runtime.
"""

from dataclasses import dataclass
from typing import Self

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.inventory.config")


@dataclass
class InventoryConfig:
    """
    Configuration schema for the inventory module.

        config = InventoryConfig.from_dict(settings.modules["inventory"])
    """

    # Horizon of the expiring-batches listing
    expiring_horizon_days: int = 90

    def __post_init__(self):
        if self.expiring_horizon_days < 0:
            raise ValueError("expiring_horizon_days cannot be negative")
        logger.info(
            "inventory_config_initialized",
            extra={"expiring_horizon_days": self.expiring_horizon_days},
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "inventory_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
