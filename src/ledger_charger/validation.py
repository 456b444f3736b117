"""Per-record eligibility and normalization."""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Union

from pydantic import ValidationError

from .config import AggregationMode, ChargerConfig
from .errors import FieldTypeError
from .fields import (
    get_amount,
    get_customer_id,
    get_date,
    get_flag_text,
    get_quantity,
    get_string,
)
from .models import BillingRecord, NormalizedItem, Skip, SkipReason

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = frozenset(["usd"])


class _Rejected(Exception):
    """Internal signal carrying the skip for the current record."""

    def __init__(self, reason: SkipReason, detail: str):
        self.reason = reason
        self.detail = detail
        super().__init__(detail)


class RecordValidator:
    """Turns a raw ledger record into a ``NormalizedItem`` or a ``Skip``.

    Rules run in a fixed order and the first failing rule decides the skip
    reason. Nothing raised while reading a record escapes ``validate``.
    """

    def __init__(self, config: ChargerConfig):
        self.config = config
        self.columns = config.columns
        self.itemized = config.mode == AggregationMode.ITEMIZED

    def stale_cutoff(self, today: date) -> date:
        """Most recent billing date that is already too stale on ``today``."""
        return today + timedelta(days=self.config.stale_days)

    def validate(self, record: BillingRecord, today: date) -> Union[NormalizedItem, Skip]:
        """Validate one record.

        Args:
            record: Raw record from the ledger.
            today: Current date in the configured time zone.

        Returns:
            The normalized item, or a Skip describing why the record is
            not charged this pass.
        """
        try:
            item = self._normalize(record, today)
        except _Rejected as r:
            skip = Skip(record_id=record.id, reason=r.reason, detail=r.detail)
        except (FieldTypeError, ValidationError) as e:
            skip = Skip(record_id=record.id, reason=SkipReason.INVALID_FIELD, detail=str(e))
        else:
            return item

        logger.info(f"Skipping record {record.id}: {skip.reason.value} ({skip.detail})")
        return skip

    def _normalize(self, record: BillingRecord, today: date) -> NormalizedItem:
        fields = record.fields
        cols = self.columns

        if get_flag_text(fields, cols.paid) == "true":
            raise _Rejected(SkipReason.ALREADY_PAID, "customer already charged for this record")

        billing_date = self._require_date(fields, cols.billing_date, "billing date")
        if billing_date > today:
            raise _Rejected(SkipReason.DATE_IN_FUTURE, f"billing date {billing_date} is after {today}")
        cutoff = self.stale_cutoff(today)
        if billing_date <= cutoff:
            raise _Rejected(SkipReason.DATE_TOO_STALE, f"billing date {billing_date} is not after {cutoff}")

        service_date = None
        if self.itemized:
            service_date = self._require_date(fields, cols.service_date, "service date")

        customer_id = get_customer_id(fields, cols.customer_id)
        if not customer_id:
            raise _Rejected(SkipReason.MISSING_FIELD, "customer ID not present")

        currency = get_string(fields, cols.currency)
        if not currency:
            raise _Rejected(SkipReason.MISSING_FIELD, "currency code not present")
        currency = currency.lower()
        if currency not in SUPPORTED_CURRENCIES:
            raise _Rejected(SkipReason.UNSUPPORTED_CURRENCY, f"unsupported currency code {currency!r}")

        amount = get_amount(fields, cols.amount)
        if amount is None:
            raise _Rejected(SkipReason.MISSING_FIELD, "invoice amount not present")
        if amount <= Decimal("0"):
            raise _Rejected(SkipReason.NON_POSITIVE_AMOUNT, f"invoice amount {amount} not greater than 0")

        quantity: Optional[int] = None
        description: Optional[str] = None
        property_label: Optional[str] = None
        if self.itemized:
            quantity = get_quantity(fields, cols.quantity)
            if quantity is None:
                raise _Rejected(SkipReason.MISSING_FIELD, "quantity not present")
            if quantity <= 0:
                raise _Rejected(SkipReason.INVALID_FIELD, f"quantity {quantity} not greater than 0")
            description = get_string(fields, cols.item_description)
            if not description:
                raise _Rejected(SkipReason.MISSING_FIELD, "item description not present")
            property_label = get_string(fields, cols.property_label)
            if not property_label:
                raise _Rejected(SkipReason.MISSING_FIELD, "property not present")

        return NormalizedItem(
            source_record_id=record.id,
            customer_id=customer_id,
            currency_code=currency,
            amount=amount,
            billing_date=billing_date,
            quantity=quantity,
            description=description,
            property_label=property_label,
            service_date=service_date,
        )

    @staticmethod
    def _require_date(fields, name: str, label: str) -> date:
        try:
            value = get_date(fields, name)
        except FieldTypeError as e:
            raise _Rejected(SkipReason.INVALID_FIELD, f"{label} {e}") from e
        if value is None:
            raise _Rejected(SkipReason.MISSING_FIELD, f"{label} not present")
        return value
