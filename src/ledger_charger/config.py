"""Configuration for the charger.

All column bindings and tunables live in one immutable ``ChargerConfig``
that is passed to each component. Only ``from_env`` (and the credential
settings below) read the process environment.
"""

import os
import enum
import logging
from pathlib import Path
from typing import List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_STALE_DAYS = -7
DEFAULT_POLL_INTERVAL = 60
MAX_PAGE_SIZE = 100


class AggregationMode(str, enum.Enum):
    """How a customer's items are turned into a charge."""
    LUMP_SUM = "lump_sum"
    ITEMIZED = "itemized"


class ColumnBindings(BaseModel):
    """Maps each logical field to its ledger column name."""
    model_config = ConfigDict(frozen=True)

    customer_id: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    paid: str = Field(..., min_length=1)
    notes: str = Field(..., min_length=1)
    currency: str = Field(..., min_length=1)
    billing_date: str = Field(..., min_length=1)
    service_date: Optional[str] = None
    quantity: Optional[str] = None
    item_description: Optional[str] = None
    property_label: Optional[str] = None

    def fetch_fields(self, mode: AggregationMode) -> List[str]:
        """Column names to request from the ledger for the given mode."""
        fields = [
            self.customer_id,
            self.amount,
            self.paid,
            self.currency,
            self.billing_date,
        ]
        if mode == AggregationMode.ITEMIZED:
            fields.extend([
                self.service_date,
                self.quantity,
                self.item_description,
                self.property_label,
            ])
        return fields


class ChargerConfig(BaseModel):
    """Resolved, immutable configuration for one charger process."""
    model_config = ConfigDict(frozen=True)

    columns: ColumnBindings
    mode: AggregationMode = AggregationMode.LUMP_SUM
    stale_days: int = Field(default=DEFAULT_STALE_DAYS, le=0)
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL, ge=0)
    write_delay_seconds: float = Field(default=1.0, ge=0)
    timezone: str = "UTC"
    page_size: int = Field(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    charge_description: str = "Cleaning/Product Replacement Charge"
    invoice_description: str = "Cleaning/Product Replacement Charges"
    days_until_due: int = Field(default=30, ge=1)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone {value!r}") from e
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return value

    @model_validator(mode="after")
    def _check_itemized_columns(self) -> "ChargerConfig":
        if self.mode == AggregationMode.ITEMIZED:
            missing = [
                name for name in ("service_date", "quantity", "item_description", "property_label")
                if not getattr(self.columns, name)
            ]
            if missing:
                raise ValueError(f"itemized mode requires column bindings for: {', '.join(missing)}")
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "ChargerConfig":
        """Build the configuration from environment variables.

        A ``.env`` file is loaded first when present; variables already set
        in the environment win.

        Args:
            env_file: Optional explicit path to a dotenv file.

        Returns:
            The resolved configuration.

        Raises:
            ConfigurationError: If a binding is missing or a value is invalid,
                including an unknown time zone.
        """
        load_dotenv(env_file)

        columns = {
            "customer_id": os.getenv("STRIPE_CUSTOMER_ID_COLUMN", ""),
            "amount": os.getenv("INVOICE_AMOUNT_COLUMN", ""),
            "paid": os.getenv("PAID_COLUMN", ""),
            "notes": os.getenv("NOTES_COLUMN", ""),
            "currency": os.getenv("CURRENCY_CODE_COLUMN", ""),
            "billing_date": os.getenv("DATE_COLUMN", ""),
            "service_date": os.getenv("SERVICE_DATE_COLUMN") or None,
            "quantity": os.getenv("QUANTITY_COLUMN") or None,
            "item_description": os.getenv("ITEM_DESCRIPTION_COLUMN") or None,
            "property_label": os.getenv("PROPERTY_COLUMN") or None,
        }
        values = {
            "columns": columns,
            "mode": os.getenv("CHARGE_MODE", AggregationMode.LUMP_SUM.value).lower(),
            "stale_days": _int_or_default("STALE_DAYS", DEFAULT_STALE_DAYS),
            "poll_interval_seconds": _int_or_default("POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            "timezone": os.getenv("TIMEZONE") or "UTC",
            "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
        }
        if os.getenv("CHARGE_DESCRIPTION"):
            values["charge_description"] = os.getenv("CHARGE_DESCRIPTION")
        if os.getenv("INVOICE_DESCRIPTION"):
            values["invoice_description"] = os.getenv("INVOICE_DESCRIPTION")
        if os.getenv("WRITE_DELAY"):
            values["write_delay_seconds"] = os.getenv("WRITE_DELAY")
        if os.getenv("REQUEST_TIMEOUT"):
            values["request_timeout_seconds"] = os.getenv("REQUEST_TIMEOUT")

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid charger configuration: {e}") from e


class AirtableSettings(BaseModel):
    """Credentials and location of the ledger table."""
    model_config = ConfigDict(frozen=True)

    api_key: str = Field(..., min_length=1)
    base_id: str = Field(..., min_length=1)
    table_name: str = Field(..., min_length=1)

    @classmethod
    def from_env(cls) -> "AirtableSettings":
        try:
            return cls(
                api_key=os.getenv("AIRTABLE_API_KEY", ""),
                base_id=os.getenv("AIRTABLE_BASE_ID", ""),
                table_name=os.getenv("TABLENAME", ""),
            )
        except ValidationError as e:
            raise ConfigurationError(
                "AIRTABLE_API_KEY, AIRTABLE_BASE_ID and TABLENAME must be set"
            ) from e


class StatusApiSettings(BaseModel):
    """Credentials for the status API served by ``ledger-charger serve``."""
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "StatusApiSettings":
        api_key = os.getenv("API_KEY") or None
        if api_key is None:
            logger.warning("API_KEY is not set; /passes endpoints will refuse every request")
        return cls(api_key=api_key)


def _int_or_default(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw)
    except (TypeError, ValueError):
        if raw:
            logger.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default
