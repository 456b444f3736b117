"""Write charge outcomes back to the ledger."""

import logging
from typing import List, Sequence, Tuple

from .config import ChargerConfig
from .errors import LedgerError
from .ledger.base import LedgerBase
from .models import ChargeOutcome, LedgerUpdate

logger = logging.getLogger(__name__)

PAID_TRUE = "true"
PAID_FALSE = "false"


class OutcomeWriter:
    """Fans one charge outcome out to every record that contributed to it."""

    def __init__(self, ledger: LedgerBase, config: ChargerConfig):
        self.ledger = ledger
        self.paid_column = config.columns.paid
        self.notes_column = config.columns.notes

    def build_updates(self, outcome: ChargeOutcome, record_ids: Sequence[str]) -> List[LedgerUpdate]:
        """Ledger patches for an outcome, one per contributing record.

        Every record of a group gets the same fields, so a group never
        ends up with mixed outcomes.
        """
        if outcome.succeeded:
            fields = {self.paid_column: PAID_TRUE, self.notes_column: outcome.confirmation_id}
        else:
            fields = {
                self.paid_column: PAID_FALSE,
                self.notes_column: f"Error charging customer: {outcome.failure_detail}",
            }
        return [LedgerUpdate(record_id=record_id, fields=dict(fields)) for record_id in record_ids]

    def write(self, outcome: ChargeOutcome, record_ids: Sequence[str]) -> Tuple[int, int]:
        """Apply the updates for an outcome.

        Each update is applied on its own; a failed update is logged and
        the remaining records are still written.

        Args:
            outcome: Result of charging a customer group.
            record_ids: IDs of the records the charge covered.

        Returns:
            Tuple of (updates applied, updates failed).
        """
        applied = 0
        failed = 0
        for update in self.build_updates(outcome, record_ids):
            try:
                self.ledger.update_record(update.record_id, update.fields)
            except LedgerError as e:
                failed += 1
                logger.error(f"Error updating ledger record {update.record_id}: {e}")
                continue
            applied += 1

        if failed:
            logger.warning(
                f"Outcome for customer {outcome.customer_id} written to {applied} of "
                f"{applied + failed} records"
            )
        return applied, failed
