"""
Tests for runtime settings loading.

Tests cover:
- Packaged defaults parse into FulfillmentSettings
- A deployment YAML is merged over the defaults key by key
- Unknown sections, non-mapping documents and invalid values are rejected
- Module sections feed each module's typed config via from_dict
- The config trace log line carries source and checksum
"""

from decimal import Decimal

import pytest
import yaml

from fulfillment_config import load_settings
from fulfillment_config.loader import (
    DEFAULTS_PATH,
    compute_checksum,
    deep_merge,
    load_yaml_file,
    parse_settings,
)
from fulfillment_modules.inventory.config import InventoryConfig
from fulfillment_modules.procurement.config import ProcurementConfig
from fulfillment_modules.sales.config import SalesConfig


def _write(tmp_path, data, name="deploy.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestDefaults:

    def test_defaults_load(self):
        settings = load_settings()
        assert settings.database.url.startswith("sqlite")
        assert settings.logging.level == "INFO"
        assert settings.source is None
        assert settings.module("inventory") == {"expiring_horizon_days": 90}

    def test_defaults_build_module_configs(self):
        settings = load_settings()
        assert ProcurementConfig.from_dict(settings.module("procurement")) == ProcurementConfig()
        assert SalesConfig.from_dict(settings.module("sales")) == SalesConfig()
        assert InventoryConfig.from_dict(settings.module("inventory")) == InventoryConfig()

    def test_unknown_module_section(self):
        with pytest.raises(KeyError):
            load_settings().module("payroll")


class TestLayering:

    def test_override_merges_over_defaults(self, tmp_path):
        path = _write(tmp_path, {
            "database": {"url": "postgresql+psycopg://app@db/fulfillment"},
            "procurement": {"match_price_tolerance_percent": "3"},
        })
        settings = load_settings(path)

        assert settings.database.url == "postgresql+psycopg://app@db/fulfillment"
        assert settings.database.pool_size == 10
        assert settings.source == str(path)
        config = ProcurementConfig.from_dict(settings.module("procurement"))
        assert config.match_price_tolerance_percent == Decimal("3")
        assert config.match_quantity_tolerance_percent == Decimal("2")

    def test_checksum_tracks_content(self, tmp_path):
        a = load_settings(_write(tmp_path, {"logging": {"level": "DEBUG"}}, "a.yaml"))
        b = load_settings(_write(tmp_path, {"logging": {"level": "DEBUG"}}, "b.yaml"))
        c = load_settings(_write(tmp_path, {"logging": {"level": "ERROR"}}, "c.yaml"))
        assert a.checksum == b.checksum
        assert a.checksum != c.checksum

    def test_deep_merge_leaves_inputs_untouched(self):
        base = {"sales": {"invoice_payment_terms_days": 30, "return_shelf_life_days": 365}}
        merged = deep_merge(base, {"sales": {"invoice_payment_terms_days": 45}})
        assert merged["sales"] == {"invoice_payment_terms_days": 45, "return_shelf_life_days": 365}
        assert base["sales"]["invoice_payment_terms_days"] == 30

    def test_checksum_is_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_trace_logged(self, tmp_path, captured_logs):
        path = _write(tmp_path, {"logging": {"level": "WARNING"}})
        settings = load_settings(path)
        traces = [r for r in captured_logs() if r["message"] == "FULFILLMENT_CONFIG_TRACE"]
        assert traces[-1]["checksum"] == settings.checksum
        assert traces[-1]["source"] == str(path)


class TestValidation:

    def test_unknown_section(self, tmp_path):
        with pytest.raises(ValueError):
            load_settings(_write(tmp_path, {"payroll": {"enabled": True}}))

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_yaml_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_database_url_required(self):
        data = load_yaml_file(DEFAULTS_PATH)
        del data["database"]["url"]
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_bad_log_level(self, tmp_path):
        with pytest.raises(ValueError):
            load_settings(_write(tmp_path, {"logging": {"level": "LOUD"}}))

    @pytest.mark.parametrize("section,values", [
        ("inventory", {"expiring_horizon_days": -1}),
        ("sales", {"return_shelf_life_days": 0}),
        ("procurement", {"match_price_tolerance_percent": "-5"}),
    ])
    def test_invalid_module_values(self, section, values):
        config_cls = {
            "inventory": InventoryConfig,
            "sales": SalesConfig,
            "procurement": ProcurementConfig,
        }[section]
        with pytest.raises(ValueError):
            config_cls.from_dict(values)

    def test_unknown_module_key(self):
        with pytest.raises(TypeError):
            SalesConfig.from_dict({"invoice_terms": 10})
