"""
Sales Configuration Schema.

Defines the structure and defaults for sales settings.  Actual values are
loaded from the ``sales`` section of the YAML settings at runtime.
"""

from dataclasses import dataclass
from typing import Self

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.sales.config")


@dataclass
class SalesConfig:
    """
    Configuration schema for the sales module.

    Override at instantiation with deployment-specific values:

        config = SalesConfig(invoice_payment_terms_days=45)
    """

    # Invoices
    invoice_payment_terms_days: int = 30

    # Returns: expiry of RET- batches when the product has no shelf life
    return_shelf_life_days: int = 365

    # Credit note tax follows the original order's tax ratio
    prorate_tax_on_returns: bool = True

    def __post_init__(self):
        if self.invoice_payment_terms_days < 0:
            raise ValueError("invoice_payment_terms_days cannot be negative")
        if self.return_shelf_life_days <= 0:
            raise ValueError("return_shelf_life_days must be positive")
        logger.info(
            "sales_config_initialized",
            extra={
                "invoice_payment_terms_days": self.invoice_payment_terms_days,
                "return_shelf_life_days": self.return_shelf_life_days,
                "prorate_tax_on_returns": self.prorate_tax_on_returns,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("sales_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "sales_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
