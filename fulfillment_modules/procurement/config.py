"""
Procurement Configuration Schema.

Three-way match tolerances and the entity type used to resolve approval
rules.  Values are loaded from the ``procurement`` section of the YAML
settings at runtime.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from fulfillment_engines.matching import MatchTolerance
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.config")


@dataclass
class ProcurementConfig:
    """
    Configuration schema for the procurement module.

        config = ProcurementConfig(match_price_tolerance_percent=Decimal("3"))
    """

    # Three-way match
    match_quantity_tolerance_percent: Decimal = Decimal("2")
    match_price_tolerance_percent: Decimal = Decimal("5")
    match_price_tolerance_minimum: Decimal = Decimal("0.01")

    # Approval rules are resolved against this entity type
    approval_entity_type: str = "purchase_request"

    def __post_init__(self):
        for name in (
            "match_quantity_tolerance_percent",
            "match_price_tolerance_percent",
            "match_price_tolerance_minimum",
        ):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                setattr(self, name, Decimal(str(value)))
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if not self.approval_entity_type:
            raise ValueError("approval_entity_type is required")
        logger.info(
            "procurement_config_initialized",
            extra={
                "match_quantity_tolerance_percent": str(self.match_quantity_tolerance_percent),
                "match_price_tolerance_percent": str(self.match_price_tolerance_percent),
                "match_price_tolerance_minimum": str(self.match_price_tolerance_minimum),
            },
        )

    @property
    def match_tolerance(self) -> MatchTolerance:
        return MatchTolerance(
            quantity_percent=self.match_quantity_tolerance_percent,
            price_percent=self.match_price_tolerance_percent,
            price_minimum=self.match_price_tolerance_minimum,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("procurement_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        logger.info(
            "procurement_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
