"""
Configuration Schema (``fulfillment_config.schema``).

Frozen dataclasses for the runtime settings.  Module sections stay as raw
dicts here; each module owns its typed config (``InventoryConfig``,
``SalesConfig``, ``ProcurementConfig``) and builds it with ``from_dict``.
The config package has no dependency on the modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MODULE_SECTIONS = ("inventory", "sales", "procurement")


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters for ``create_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be at least 1")
        if self.max_overflow < 0:
            raise ValueError("database.max_overflow cannot be negative")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown logging level: {self.level}")


@dataclass(frozen=True)
class FulfillmentSettings:
    """Complete runtime settings as returned by ``load_settings``."""

    database: DatabaseSettings
    logging: LoggingSettings
    modules: dict[str, dict[str, Any]] = field(default_factory=dict)
    checksum: str = ""
    source: str | None = None

    def module(self, name: str) -> dict[str, Any]:
        """Raw section for one module; empty if the file omits it."""
        if name not in MODULE_SECTIONS:
            raise KeyError(f"Unknown module section: {name}")
        return dict(self.modules.get(name) or {})
