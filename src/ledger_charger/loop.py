"""The periodic reconciliation loop."""

import signal
import time
import uuid
import logging
import threading
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from .aggregation import CustomerAggregator
from .charging import ChargeExecutor
from .config import ChargerConfig
from .errors import LedgerFetchError
from .ledger.base import LedgerBase, build_unpaid_filter
from .models import BillingRecord, ChargeOutcome, PassReport, PassStatus, Skip
from .outcomes import OutcomeWriter
from .validation import RecordValidator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShutdownToken:
    """Cooperative stop request, checked by the loop between passes."""

    def __init__(self):
        self._event = threading.Event()

    def request(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if shutdown was requested."""
        return self._event.wait(timeout)


def install_signal_handlers(token: ShutdownToken) -> None:
    """Request shutdown on SIGINT and SIGTERM. Main thread only."""

    def _handler(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, stopping after the current pass")
        token.request()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


class ReconciliationLoop:
    """Runs fetch, validate, aggregate, charge and write passes on a timer.

    A pass owns all of its data; nothing is carried from one pass to the
    next except ``last_report``, which is kept for status reporting.
    """

    def __init__(
        self,
        ledger: LedgerBase,
        executor: ChargeExecutor,
        writer: OutcomeWriter,
        config: ChargerConfig,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the loop.

        Args:
            ledger: Ledger service holding the billing records.
            executor: Charge executor bound to a payment processor.
            writer: Outcome writer bound to the same ledger.
            config: Charger configuration.
            clock: Returns the current time; made zone-aware with the
                configured time zone.
            sleep: Used for the delay between customer groups.
        """
        self.ledger = ledger
        self.executor = executor
        self.writer = writer
        self.config = config
        self.validator = RecordValidator(config)
        self.aggregator = CustomerAggregator(config.mode)
        self._clock = clock
        self._sleep = sleep
        self._filter = build_unpaid_filter(config.columns.paid)
        self._fields = config.columns.fetch_fields(config.mode)
        self.last_report: Optional[PassReport] = None

    def today(self) -> date:
        """Current calendar date in the configured time zone."""
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.config.zone).date()

    def fetch_all(self) -> List[BillingRecord]:
        """Fetch every eligible record, following continuation cursors.

        Raises:
            LedgerFetchError: If any page fails; earlier pages are discarded.
        """
        records: List[BillingRecord] = []
        offset: Optional[str] = None
        pages = 0
        while True:
            page = self.ledger.list_records(
                fields=self._fields,
                filter_formula=self._filter,
                page_size=self.config.page_size,
                offset=offset,
            )
            pages += 1
            records.extend(page.records)
            if not page.offset:
                break
            offset = page.offset
        logger.info(f"Fetched {len(records)} unpaid records in {pages} pages")
        return records

    def run_pass(self) -> PassReport:
        """Run one complete pass.

        Returns:
            PassReport with statistics and per-customer outcomes. A fetch
            failure yields an aborted report and no charges.
        """
        report = PassReport(id=str(uuid.uuid4()), mode=self.config.mode.value)
        logger.info(f"Starting pass {report.id} in {report.mode} mode")

        try:
            records = self.fetch_all()
        except LedgerFetchError as e:
            logger.error(f"Error fetching ledger records, ending pass {report.id}: {e}")
            report.status = PassStatus.ABORTED
            report.error_message = str(e)
            report.completed_at = datetime.utcnow()
            return report
        report.total_fetched = len(records)

        today = self.today()
        items = []
        for record in records:
            result = self.validator.validate(record, today)
            if isinstance(result, Skip):
                report.record_skip(result.reason)
            else:
                items.append(result)
        report.total_eligible = len(items)

        groups = self.aggregator.aggregate(items)
        report.total_groups = len(groups)

        for index, group in enumerate(groups):
            if index:
                self._sleep(self.config.write_delay_seconds)
            try:
                outcome = self.executor.charge(group)
            except Exception as e:
                logger.exception(f"Unexpected error charging customer {group.customer_id}")
                outcome = ChargeOutcome.failure(group.customer_id, f"unexpected error: {e}")

            applied, failed = self.writer.write(outcome, group.record_ids)
            report.updates_applied += applied
            report.updates_failed += failed
            report.outcomes.append(outcome)
            if outcome.succeeded:
                report.total_succeeded += 1
            else:
                report.total_failed += 1

        report.status = PassStatus.COMPLETED
        report.completed_at = datetime.utcnow()
        logger.info(
            f"Pass {report.id} completed: {report.total_fetched} fetched, "
            f"{report.total_skipped} skipped, {report.total_succeeded} charged, "
            f"{report.total_failed} failed, {report.updates_failed} ledger updates failed"
        )
        return report

    def run_forever(self, shutdown: ShutdownToken) -> None:
        """Run passes until shutdown is requested.

        Shutdown is only observed between passes; an in-flight charge is
        never interrupted.
        """
        while not shutdown.is_set():
            try:
                self.last_report = self.run_pass()
            except Exception:
                logger.exception("Pass failed unexpectedly")
            if shutdown.wait(self.config.poll_interval_seconds):
                break
        logger.info("Reconciliation loop stopped")
