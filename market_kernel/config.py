"""
Fulfillment configuration schema.

Defines the tunable business parameters of the fulfillment core with
their defaults.  Values can be overridden from a dict or a YAML file:

    config = FulfillmentConfig.from_yaml(Path("config/fulfillment.yaml"))
"""

from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Self

import yaml

from market_kernel.logging_config import get_logger

logger = get_logger("config")

_DECIMAL_FIELDS = {"cashback_percentage", "seller_discount_cap", "default_delivery_fee"}


@dataclass
class FulfillmentConfig:
    """Configuration for the order fulfillment core."""

    # Cashback
    cashback_percentage: Decimal = Decimal("2")
    cashback_validity_days: int = 30
    expiring_window_days: int = 7

    # Discounts
    seller_discount_cap: Decimal = Decimal("0.20")

    # Orders
    default_delivery_fee: Decimal = Decimal("0")
    order_number_prefix: str = "ORD"
    history_page_size: int = 20

    # Background expiry
    expiry_interval_seconds: float = 3600.0

    def __post_init__(self):
        if not (Decimal("0") < self.cashback_percentage <= Decimal("100")):
            raise ValueError("cashback_percentage must be in (0, 100]")
        if self.cashback_validity_days <= 0:
            raise ValueError("cashback_validity_days must be positive")
        if self.expiring_window_days <= 0:
            raise ValueError("expiring_window_days must be positive")
        if not (Decimal("0") <= self.seller_discount_cap <= Decimal("1")):
            raise ValueError("seller_discount_cap must be a fraction between 0 and 1")
        if self.default_delivery_fee < 0:
            raise ValueError("default_delivery_fee cannot be negative")
        if not self.order_number_prefix:
            raise ValueError("order_number_prefix cannot be empty")
        if self.history_page_size <= 0:
            raise ValueError("history_page_size must be positive")
        if self.expiry_interval_seconds <= 0:
            raise ValueError("expiry_interval_seconds must be positive")

        logger.info(
            "fulfillment_config_initialized",
            extra={
                "cashback_percentage": self.cashback_percentage,
                "cashback_validity_days": self.cashback_validity_days,
                "seller_discount_cap": self.seller_discount_cap,
                "expiry_interval_seconds": self.expiry_interval_seconds,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a mapping, coercing money fields to Decimal."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown fulfillment config keys: {unknown}")
        logger.info(
            "fulfillment_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        values = dict(data)
        for name in _DECIMAL_FIELDS & values.keys():
            values[name] = _to_decimal(name, values[name])
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> Self:
        """
        Load config from a YAML file.

        The file may hold the settings at the top level or under a
        ``fulfillment:`` key.

        Raises:
            FileNotFoundError: if the file does not exist.
            yaml.YAMLError: if the file contains invalid YAML.
            ValueError: for unknown keys or invalid values.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        section = data.get("fulfillment", data)
        logger.info("fulfillment_config_loading_from_yaml", extra={"path": str(path)})
        return cls.from_dict(section)


def _to_decimal(name: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal number, got {value!r}") from exc
