"""Exception hierarchy for the charger.

Per-record skips are plain values (see ``models.Skip``); only conditions
that cross a component boundary are raised.
"""


class ChargerError(Exception):
    """Base class for all charger errors."""


class ConfigurationError(ChargerError):
    """Configuration is unusable. The process must not start."""


class FieldTypeError(ChargerError):
    """A ledger field holds a value of the wrong shape."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")


class UnsupportedCurrencyError(ChargerError):
    """The currency has no minor-unit conversion."""


class LedgerError(ChargerError):
    """Base class for ledger service failures."""


class LedgerFetchError(LedgerError):
    """Listing records failed. Ends the current pass."""


class LedgerUpdateError(LedgerError):
    """A partial update of one record failed."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(f"record {record_id}: {message}")


class ProcessorError(ChargerError):
    """Base class for payment processor failures."""


class PaymentMethodError(ProcessorError):
    """Payment methods could not be listed."""


class ChargeDeclinedError(ProcessorError):
    """The processor rejected the charge or its confirmation."""


class InvoiceError(ProcessorError):
    """An invoice or invoice item could not be created."""
