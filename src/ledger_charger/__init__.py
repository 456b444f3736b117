# ledger_charger package
__version__ = "0.1.0"

from .config import AggregationMode, AirtableSettings, ChargerConfig, ColumnBindings
from .errors import (
    ChargerError,
    ConfigurationError,
    FieldTypeError,
    LedgerError,
    LedgerFetchError,
    LedgerUpdateError,
    ProcessorError,
    PaymentMethodError,
    ChargeDeclinedError,
    InvoiceError,
    UnsupportedCurrencyError,
)
from .models import (
    BillingRecord,
    ChargeOutcome,
    CustomerGroup,
    LedgerPage,
    LedgerUpdate,
    NormalizedItem,
    OutcomeStatus,
    PassReport,
    PassStatus,
    Skip,
    SkipReason,
)
from .validation import RecordValidator
from .aggregation import CustomerAggregator
from .charging import ChargeExecutor, first_available, to_minor_units
from .outcomes import OutcomeWriter
from .loop import ReconciliationLoop, ShutdownToken
from .report import ReportGenerator
