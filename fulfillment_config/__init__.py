"""
fulfillment_config -- single public entrypoint for runtime settings.

Responsibility:
    ``load_settings()`` is the only way to obtain configuration.  It layers
    an optional deployment YAML file over the packaged ``defaults.yaml``
    and returns a frozen ``FulfillmentSettings``.

Architecture position:
    Configuration -- sits beside ``fulfillment_kernel`` and below
    ``fulfillment_services``.  The kernel, engines and modules never import
    from this package; ``FulfillmentCore`` hands the module sections to
    each module's ``from_dict``.

Failure modes:
    - ``FileNotFoundError`` -- the given settings file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown sections or invalid values.

Every successful call emits a ``FULFILLMENT_CONFIG_TRACE`` log entry with
the source path and checksum of the merged settings.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fulfillment_config.loader import load_merged, parse_settings
from fulfillment_config.schema import (
    DatabaseSettings,
    FulfillmentSettings,
    LoggingSettings,
)

_logger = logging.getLogger("fulfillment_kernel.config")


def load_settings(path: str | Path | None = None) -> FulfillmentSettings:
    """Load defaults, merge ``path`` over them and parse the result."""
    data, source = load_merged(Path(path) if path is not None else None)
    settings = parse_settings(data, source=source)
    _logger.info(
        "FULFILLMENT_CONFIG_TRACE",
        extra={
            "source": source or "defaults",
            "checksum": settings.checksum,
            "database_backend": settings.database.url.split(":", 1)[0],
            "log_level": settings.logging.level,
        },
    )
    return settings


__all__ = [
    "DatabaseSettings",
    "FulfillmentSettings",
    "LoggingSettings",
    "load_settings",
]
