"""Shared test fixtures and configuration."""

import os
import pytest
from datetime import datetime, timezone
from typing import Any, Dict

# Set up test environment variables before importing modules
os.environ.setdefault("STRIPE_API_KEY", "sk_test_dummy_key_for_testing")

from ledger_charger.config import AggregationMode, ChargerConfig, ColumnBindings
from ledger_charger.models import BillingRecord

# 2024-03-10 in UTC
FIXED_NOW = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)

COLUMNS = {
    "customer_id": "Stripe Customer",
    "amount": "Amount",
    "paid": "Paid",
    "notes": "Notes",
    "currency": "Currency",
    "billing_date": "Bill Date",
    "service_date": "Service Date",
    "quantity": "Quantity",
    "item_description": "Item",
    "property_label": "Property",
}


@pytest.fixture
def columns() -> ColumnBindings:
    return ColumnBindings(**COLUMNS)


@pytest.fixture
def lump_config(columns) -> ChargerConfig:
    """Lump-sum configuration with no delays."""
    return ChargerConfig(
        columns=columns,
        mode=AggregationMode.LUMP_SUM,
        timezone="UTC",
        poll_interval_seconds=0,
        write_delay_seconds=0,
    )


@pytest.fixture
def itemized_config(columns) -> ChargerConfig:
    """Itemized configuration with no delays."""
    return ChargerConfig(
        columns=columns,
        mode=AggregationMode.ITEMIZED,
        timezone="UTC",
        poll_interval_seconds=0,
        write_delay_seconds=0,
    )


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


def make_fields(**overrides: Any) -> Dict[str, Any]:
    """Field map for an eligible record; keyword names are logical fields."""
    values = {
        "customer_id": "cus_123",
        "amount": 12.5,
        "currency": "USD",
        "billing_date": "2024-03-08",
        "service_date": "2024-03-01",
        "quantity": 1,
        "item_description": "Cleaning",
        "property_label": "Unit 4B",
    }
    values.update(overrides)
    return {COLUMNS[name]: value for name, value in values.items() if value is not None}


def make_record(record_id: str = "rec001", **overrides: Any) -> BillingRecord:
    return BillingRecord(id=record_id, fields=make_fields(**overrides))


@pytest.fixture
def record_factory():
    """Build an eligible billing record, overriding logical fields by name."""
    return make_record
