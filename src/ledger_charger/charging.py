"""Charge submission against the payment processor."""

import hashlib
import logging
from decimal import Decimal, ROUND_DOWN
from typing import Callable, List, Optional, Sequence

from .config import AggregationMode, ChargerConfig
from .errors import ProcessorError, UnsupportedCurrencyError
from .models import ChargeOutcome, CustomerGroup, NormalizedItem
from .processors.base import PaymentMethod, ProcessorBase

logger = logging.getLogger(__name__)

# Minor units per major unit, by currency
MINOR_UNIT_FACTORS = {
    "usd": 100,
}

COLLECTION_METHOD = "send_invoice"

PaymentMethodSelector = Callable[[Sequence[PaymentMethod]], Optional[PaymentMethod]]


def first_available(methods: Sequence[PaymentMethod]) -> Optional[PaymentMethod]:
    """Pick the first payment method the processor lists.

    This is the charging policy, not a best-match: no ranking by brand,
    expiry or cost is attempted.
    """
    return methods[0] if methods else None


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a major-unit amount to the processor's integer minor units.

    Multiplies then truncates toward zero, so 19.759 usd becomes 1975.

    Raises:
        UnsupportedCurrencyError: If the currency has no known factor.
    """
    factor = MINOR_UNIT_FACTORS.get(currency.lower())
    if factor is None:
        raise UnsupportedCurrencyError(f"currency {currency!r} not supported")
    return int((amount * factor).to_integral_value(rounding=ROUND_DOWN))


def _idempotency_key(prefix: str, *parts: str) -> str:
    material = "|".join(parts)
    return prefix + hashlib.sha256(material.encode("utf-8")).hexdigest()[:40]


def charge_idempotency_key(customer_id: str, currency: str, amount: int, record_ids: Sequence[str]) -> str:
    """Stable key for one charge of one set of records.

    Replaying the same charge (for instance after the ledger write-back
    failed) returns the original payment instead of charging twice.
    """
    return _idempotency_key("charger-", customer_id, currency, str(amount), ",".join(sorted(record_ids)))


def invoice_line_idempotency_key(customer_id: str, currency: str, amount: int, record_id: str) -> str:
    return _idempotency_key("charger-line-", customer_id, currency, str(amount), record_id)


def invoice_idempotency_key(customer_id: str, record_ids: Sequence[str]) -> str:
    """Stable key for the invoice covering the given records."""
    return _idempotency_key("charger-invoice-", customer_id, ",".join(sorted(record_ids)))


def invoice_line_description(item: NormalizedItem) -> str:
    service_date = item.service_date.isoformat() if item.service_date else "undated"
    return f"{item.description} - {item.property_label} ({service_date})"


class ChargeExecutor:
    """Submits one charge per customer group and reports the outcome.

    Every call is a single attempt. A failed group is not retried in
    process; its records come back on a later poll once the ledger allows it.
    """

    def __init__(
        self,
        processor: ProcessorBase,
        config: ChargerConfig,
        selector: PaymentMethodSelector = first_available,
    ):
        """Initialize the executor.

        Args:
            processor: Payment processor adapter.
            config: Charger configuration (mode, descriptions, due terms).
            selector: Picks the payment method to charge from the listed ones.
        """
        self.processor = processor
        self.config = config
        self.selector = selector

    def charge(self, group: CustomerGroup) -> ChargeOutcome:
        """Charge a group using the configured aggregation mode."""
        if self.config.mode == AggregationMode.ITEMIZED:
            return self.charge_itemized(group)
        return self.charge_lump_sum(group)

    def charge_lump_sum(self, group: CustomerGroup) -> ChargeOutcome:
        """Charge the summed amount of a group to one saved card.

        Args:
            group: Customer group with at least one item.

        Returns:
            Success with the payment confirmation ID, or Failure with the
            processor's detail.
        """
        customer_id = group.customer_id
        try:
            amount = to_minor_units(group.total_amount, group.currency_code)
        except UnsupportedCurrencyError as e:
            return ChargeOutcome.failure(customer_id, str(e))
        if amount <= 0:
            return ChargeOutcome.failure(customer_id, "cannot charge a zero amount")

        try:
            methods = self.processor.list_payment_methods(customer_id, method_type="card")
        except ProcessorError as e:
            logger.warning(f"Could not list payment methods for customer {customer_id}: {e}")
            return ChargeOutcome.failure(customer_id, f"unable to list payment methods: {e}")

        method = self.selector(methods)
        if method is None:
            logger.warning(f"Customer {customer_id} has no payment method on file")
            return ChargeOutcome.failure(customer_id, "unable to charge any payment method on file")

        key = charge_idempotency_key(customer_id, group.currency_code, amount, group.record_ids)
        try:
            confirmation = self.processor.create_and_confirm_charge(
                amount=amount,
                currency=group.currency_code,
                customer_id=customer_id,
                payment_method_id=method.id,
                description=self.config.charge_description,
                idempotency_key=key,
            )
        except ProcessorError as e:
            logger.warning(f"Charge of {amount} {group.currency_code} for customer {customer_id} failed: {e}")
            return ChargeOutcome.failure(customer_id, str(e))

        logger.info(
            f"Charged customer {customer_id} {amount} {group.currency_code} "
            f"for {len(group.items)} records: {confirmation}"
        )
        return ChargeOutcome.success(customer_id, confirmation)

    def charge_itemized(self, group: CustomerGroup) -> ChargeOutcome:
        """Invoice a group line by line, oldest service date first.

        A failed line is logged and left out of the invoice. If no line
        could be created there is nothing to invoice and the group fails.
        If the invoice itself cannot be created, the lines created for it
        are deleted so they do not end up on a later invoice.

        Args:
            group: Customer group with at least one item.

        Returns:
            Success with the invoice ID, or Failure.
        """
        customer_id = group.customer_id
        created: List[str] = []
        invoiced_records: List[str] = []
        failed_lines: List[str] = []

        for item in group.chronological_items():
            try:
                amount = to_minor_units(item.amount, item.currency_code)
                item_id = self.processor.create_invoice_item(
                    customer_id=customer_id,
                    amount=amount,
                    currency=item.currency_code,
                    description=invoice_line_description(item),
                    metadata={"record_id": item.source_record_id, "quantity": str(item.quantity)},
                    idempotency_key=invoice_line_idempotency_key(
                        customer_id, item.currency_code, amount, item.source_record_id
                    ),
                )
            except (ProcessorError, UnsupportedCurrencyError) as e:
                logger.warning(f"Invoice line for record {item.source_record_id} failed: {e}")
                failed_lines.append(item.source_record_id)
                continue
            created.append(item_id)
            invoiced_records.append(item.source_record_id)

        if not created:
            return ChargeOutcome.failure(
                customer_id,
                f"no invoice lines could be created for {len(failed_lines)} records",
                failed_lines=failed_lines,
            )

        try:
            invoice_id = self.processor.create_invoice(
                customer_id=customer_id,
                auto_advance=True,
                collection_method=COLLECTION_METHOD,
                days_until_due=self.config.days_until_due,
                description=self.config.invoice_description,
                idempotency_key=invoice_idempotency_key(customer_id, invoiced_records),
            )
        except ProcessorError as e:
            logger.warning(f"Invoice for customer {customer_id} failed: {e}")
            self._discard_lines(created)
            return ChargeOutcome.failure(customer_id, str(e), failed_lines=failed_lines)

        if failed_lines:
            logger.warning(
                f"Invoice {invoice_id} for customer {customer_id} is missing lines for records: "
                f"{', '.join(failed_lines)}"
            )
        logger.info(f"Invoiced customer {customer_id} with {len(created)} lines: {invoice_id}")
        return ChargeOutcome.success(customer_id, invoice_id, failed_lines=failed_lines)

    def _discard_lines(self, item_ids: List[str]) -> None:
        for item_id in item_ids:
            try:
                self.processor.delete_invoice_item(item_id)
            except ProcessorError as e:
                logger.error(f"Orphaned invoice item {item_id} could not be deleted: {e}")
