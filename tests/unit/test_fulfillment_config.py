"""Tests for FulfillmentConfig validation and loading."""

from decimal import Decimal

import pytest
import yaml

from market_kernel.config import FulfillmentConfig


class TestDefaults:

    def test_defaults(self):
        config = FulfillmentConfig.with_defaults()

        assert config.cashback_percentage == Decimal("2")
        assert config.cashback_validity_days == 30
        assert config.seller_discount_cap == Decimal("0.20")
        assert config.order_number_prefix == "ORD"


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"cashback_percentage": Decimal("0")},
            {"cashback_percentage": Decimal("101")},
            {"cashback_validity_days": 0},
            {"expiring_window_days": -1},
            {"seller_discount_cap": Decimal("1.5")},
            {"default_delivery_fee": Decimal("-1")},
            {"order_number_prefix": ""},
            {"history_page_size": 0},
            {"expiry_interval_seconds": 0},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValueError):
            FulfillmentConfig(**overrides)


class TestLoading:

    def test_from_dict_coerces_decimals(self):
        config = FulfillmentConfig.from_dict(
            {"cashback_percentage": "3.5", "seller_discount_cap": 0.15}
        )
        assert config.cashback_percentage == Decimal("3.5")
        assert config.seller_discount_cap == Decimal("0.15")

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="cashback_rate"):
            FulfillmentConfig.from_dict({"cashback_rate": 2})

    def test_from_dict_rejects_bad_decimal(self):
        with pytest.raises(ValueError):
            FulfillmentConfig.from_dict({"default_delivery_fee": "free"})

    def test_from_yaml_nested_section(self, tmp_path):
        path = tmp_path / "fulfillment.yaml"
        path.write_text(
            yaml.safe_dump(
                {"fulfillment": {"cashback_validity_days": 60, "order_number_prefix": "MK"}}
            )
        )

        config = FulfillmentConfig.from_yaml(path)

        assert config.cashback_validity_days == 60
        assert config.order_number_prefix == "MK"

    def test_from_yaml_top_level(self, tmp_path):
        path = tmp_path / "fulfillment.yaml"
        path.write_text("expiring_window_days: 3\n")
        assert FulfillmentConfig.from_yaml(path).expiring_window_days == 3

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FulfillmentConfig.from_yaml(tmp_path / "absent.yaml")

    def test_from_yaml_requires_mapping(self, tmp_path):
        path = tmp_path / "fulfillment.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            FulfillmentConfig.from_yaml(path)
