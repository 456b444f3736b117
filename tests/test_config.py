"""Tests for configuration loading."""

import os
import pytest
from unittest.mock import patch

from ledger_charger.config import (
    AggregationMode,
    AirtableSettings,
    ChargerConfig,
    ColumnBindings,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STALE_DAYS,
)
from ledger_charger.errors import ConfigurationError

BASE_ENV = {
    "STRIPE_CUSTOMER_ID_COLUMN": "Stripe Customer",
    "INVOICE_AMOUNT_COLUMN": "Amount",
    "PAID_COLUMN": "Paid",
    "NOTES_COLUMN": "Notes",
    "CURRENCY_CODE_COLUMN": "Currency",
    "DATE_COLUMN": "Bill Date",
}

ITEMIZED_ENV = {
    **BASE_ENV,
    "CHARGE_MODE": "itemized",
    "SERVICE_DATE_COLUMN": "Service Date",
    "QUANTITY_COLUMN": "Quantity",
    "ITEM_DESCRIPTION_COLUMN": "Item",
    "PROPERTY_COLUMN": "Property",
}


def load(env, tmp_path):
    """Load configuration from exactly ``env`` and an empty dotenv file."""
    env_file = tmp_path / ".env"
    env_file.write_text("")
    with patch.dict(os.environ, env, clear=True):
        return ChargerConfig.from_env(env_file)


class TestFromEnv:
    """Tests for ChargerConfig.from_env."""

    def test_defaults(self, tmp_path):
        config = load(BASE_ENV, tmp_path)

        assert config.columns.customer_id == "Stripe Customer"
        assert config.columns.billing_date == "Bill Date"
        assert config.mode == AggregationMode.LUMP_SUM
        assert config.stale_days == DEFAULT_STALE_DAYS == -7
        assert config.poll_interval_seconds == DEFAULT_POLL_INTERVAL == 60
        assert config.write_delay_seconds == 1.0
        assert config.timezone == "UTC"
        assert config.page_size == 100
        assert config.charge_description == "Cleaning/Product Replacement Charge"

    def test_overrides(self, tmp_path):
        config = load({
            **BASE_ENV,
            "STALE_DAYS": "-14",
            "POLL_INTERVAL": "300",
            "TIMEZONE": "America/New_York",
            "LOG_LEVEL": "debug",
            "CHARGE_DESCRIPTION": "Monthly service",
            "REQUEST_TIMEOUT": "5",
        }, tmp_path)

        assert config.stale_days == -14
        assert config.poll_interval_seconds == 300
        assert config.zone.key == "America/New_York"
        assert config.log_level == "DEBUG"
        assert config.charge_description == "Monthly service"
        assert config.request_timeout_seconds == 5.0

    @pytest.mark.parametrize("name,default", [("STALE_DAYS", -7), ("POLL_INTERVAL", 60)])
    def test_unparseable_integers_fall_back(self, tmp_path, caplog, name, default):
        with caplog.at_level("WARNING"):
            config = load({**BASE_ENV, name: "soon"}, tmp_path)

        field = "stale_days" if name == "STALE_DAYS" else "poll_interval_seconds"
        assert getattr(config, field) == default
        assert name in caplog.text

    def test_dotenv_file_is_loaded(self, tmp_path):
        env_file = tmp_path / "charger.env"
        env_file.write_text("\n".join(f"{k}={v}" for k, v in BASE_ENV.items()) + "\nPOLL_INTERVAL=15\n")
        with patch.dict(os.environ, {}, clear=True):
            config = ChargerConfig.from_env(env_file)
        assert config.columns.amount == "Amount"
        assert config.poll_interval_seconds == 15

    def test_environment_wins_over_dotenv(self, tmp_path):
        env_file = tmp_path / "charger.env"
        env_file.write_text("POLL_INTERVAL=15\n")
        with patch.dict(os.environ, {**BASE_ENV, "POLL_INTERVAL": "45"}, clear=True):
            config = ChargerConfig.from_env(env_file)
        assert config.poll_interval_seconds == 45

    def test_missing_column_binding(self, tmp_path):
        env = {k: v for k, v in BASE_ENV.items() if k != "PAID_COLUMN"}
        with pytest.raises(ConfigurationError) as exc_info:
            load(env, tmp_path)
        assert "paid" in str(exc_info.value)

    def test_unknown_timezone(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load({**BASE_ENV, "TIMEZONE": "Mars/Olympus_Mons"}, tmp_path)
        assert "Mars/Olympus_Mons" in str(exc_info.value)

    def test_positive_stale_days_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load({**BASE_ENV, "STALE_DAYS": "7"}, tmp_path)

    def test_unknown_mode_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load({**BASE_ENV, "CHARGE_MODE": "monthly"}, tmp_path)

    def test_itemized_mode(self, tmp_path):
        config = load(ITEMIZED_ENV, tmp_path)
        assert config.mode == AggregationMode.ITEMIZED
        assert config.columns.fetch_fields(config.mode)[-4:] == ["Service Date", "Quantity", "Item", "Property"]

    def test_itemized_mode_requires_item_columns(self, tmp_path):
        env = {k: v for k, v in ITEMIZED_ENV.items() if k != "QUANTITY_COLUMN"}
        with pytest.raises(ConfigurationError) as exc_info:
            load(env, tmp_path)
        assert "quantity" in str(exc_info.value)


class TestChargerConfig:
    def test_is_immutable(self, lump_config):
        with pytest.raises(Exception):
            lump_config.stale_days = -1

    def test_lump_sum_fetch_fields(self, columns):
        assert columns.fetch_fields(AggregationMode.LUMP_SUM) == [
            "Stripe Customer", "Amount", "Paid", "Currency", "Bill Date",
        ]

    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_bounds(self, columns, page_size):
        with pytest.raises(ValueError):
            ChargerConfig(columns=columns, page_size=page_size)

    def test_itemized_direct_construction_requires_columns(self):
        columns = ColumnBindings(
            customer_id="c", amount="a", paid="p", notes="n", currency="cur", billing_date="d",
        )
        with pytest.raises(ValueError):
            ChargerConfig(columns=columns, mode=AggregationMode.ITEMIZED)


class TestAirtableSettings:
    def test_from_env(self):
        with patch.dict(os.environ, {
            "AIRTABLE_API_KEY": "pat_x", "AIRTABLE_BASE_ID": "appX", "TABLENAME": "Billing",
        }, clear=True):
            settings = AirtableSettings.from_env()
        assert settings.table_name == "Billing"

    def test_missing_values(self):
        with patch.dict(os.environ, {"AIRTABLE_API_KEY": "pat_x"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                AirtableSettings.from_env()
        assert "TABLENAME" in str(exc_info.value)
