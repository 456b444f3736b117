"""In-memory ledger for tests and simulated runs."""

import re
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import LedgerFetchError, LedgerUpdateError
from ..fields import get_flag_text
from ..models import BillingRecord, LedgerPage
from .base import LedgerBase

logger = logging.getLogger(__name__)

# NOT({Column} = 'value'), the only clause shape build_unpaid_filter emits
_EXCLUSION = re.compile(r"NOT\(\{([^}]+)\} = '([^']*)'\)")


class InMemoryLedger(LedgerBase):
    """
    Ledger table held in a dict.

    Features:
    - Offset pagination with string cursors, like the real service
    - Evaluates the exclusion formulas produced by ``build_unpaid_filter``
    - Records every applied update
    - Injectable fetch and update failures
    """

    def __init__(
        self,
        records: Optional[Iterable[BillingRecord]] = None,
        max_page_size: int = 100,
        fail_fetch_at_page: Optional[int] = None,
        fail_updates_for: Optional[Set[str]] = None,
    ):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._order: List[str] = []
        for record in records or []:
            self.add(record)
        self.max_page_size = max_page_size
        self.fail_fetch_at_page = fail_fetch_at_page
        self.fail_updates_for = set(fail_updates_for or ())
        self.updates: List[Tuple[str, Dict[str, str]]] = []
        self.list_calls: List[Dict[str, Any]] = []

    def add(self, record: BillingRecord) -> None:
        if record.id not in self._rows:
            self._order.append(record.id)
        self._rows[record.id] = dict(record.fields)

    def get(self, record_id: str) -> BillingRecord:
        return BillingRecord(id=record_id, fields=dict(self._rows[record_id]))

    def _matches(self, fields: Dict[str, Any], filter_formula: Optional[str]) -> bool:
        if not filter_formula:
            return True
        for column, value in _EXCLUSION.findall(filter_formula):
            if get_flag_text(fields, column) == value:
                return False
        return True

    def list_records(
        self,
        fields: List[str],
        filter_formula: Optional[str] = None,
        page_size: int = 100,
        offset: Optional[str] = None,
    ) -> LedgerPage:
        page_number = len(self.list_calls)
        self.list_calls.append({"fields": list(fields), "filter_formula": filter_formula,
                                "page_size": page_size, "offset": offset})
        if self.fail_fetch_at_page is not None and page_number == self.fail_fetch_at_page:
            raise LedgerFetchError("simulated ledger outage")

        wanted = [name for name in fields if name]
        matching = [
            record_id for record_id in self._order
            if self._matches(self._rows[record_id], filter_formula)
        ]
        start = int(offset) if offset else 0
        size = min(page_size, self.max_page_size)
        chunk = matching[start:start + size]
        records = [
            BillingRecord(id=record_id, fields={
                name: value for name, value in self._rows[record_id].items()
                if not wanted or name in wanted
            })
            for record_id in chunk
        ]
        next_start = start + size
        return LedgerPage(records=records, offset=str(next_start) if next_start < len(matching) else None)

    def update_record(self, record_id: str, fields: Dict[str, str]) -> None:
        if record_id in self.fail_updates_for:
            raise LedgerUpdateError(record_id, "simulated update failure")
        if record_id not in self._rows:
            raise LedgerUpdateError(record_id, "no such record")
        self._rows[record_id].update(fields)
        self.updates.append((record_id, dict(fields)))
