"""
Configuration Loader (``fulfillment_config.loader``).

Responsibility
--------------
Reads YAML files, layers a deployment file over the packaged
``defaults.yaml`` and parses the result into ``fulfillment_config.schema``
dataclasses.  Callers use ``fulfillment_config.load_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Non-mapping document or unknown top-level section  -> ``ValueError``.
"""

from __future__ import annotations

import copy
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import (
    MODULE_SECTIONS,
    DatabaseSettings,
    FulfillmentSettings,
    LoggingSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_KNOWN_SECTIONS = frozenset({"database", "logging", *MODULE_SECTIONS})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the merged settings."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_settings(data: dict[str, Any], source: str | None = None) -> FulfillmentSettings:
    unknown = set(data) - _KNOWN_SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    database = data.get("database") or {}
    if "url" not in database:
        raise ValueError("database.url is required")
    return FulfillmentSettings(
        database=DatabaseSettings(**database),
        logging=LoggingSettings(**(data.get("logging") or {})),
        modules={name: dict(data.get(name) or {}) for name in MODULE_SECTIONS},
        checksum=compute_checksum(data),
        source=source,
    )


def load_merged(path: Path | None = None) -> tuple[dict[str, Any], str | None]:
    data = load_yaml_file(DEFAULTS_PATH)
    if path is None:
        return data, None
    return deep_merge(data, load_yaml_file(path)), str(path)
