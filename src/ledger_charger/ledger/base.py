"""Ledger service interface."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..models import LedgerPage


def build_unpaid_filter(paid_column: str) -> str:
    """Formula selecting records whose paid field is neither 'true' nor 'false'.

    Records already charged, and records whose charge failed, are left
    alone until someone clears the field.
    """
    return f"AND(NOT({{{paid_column}}} = 'true'), NOT({{{paid_column}}} = 'false'))"


class LedgerBase(ABC):
    """Base class for ledger services holding billing records."""

    @abstractmethod
    def list_records(
        self,
        fields: List[str],
        filter_formula: Optional[str] = None,
        page_size: int = 100,
        offset: Optional[str] = None,
    ) -> LedgerPage:
        """Fetch one page of records.

        Args:
            fields: Column names to return.
            filter_formula: Formula records must satisfy.
            page_size: Maximum number of records in the page.
            offset: Continuation cursor from the previous page.

        Returns:
            LedgerPage whose ``offset`` is set when more pages follow.

        Raises:
            LedgerFetchError: If the page could not be fetched.
        """
        raise NotImplementedError

    @abstractmethod
    def update_record(self, record_id: str, fields: Dict[str, str]) -> None:
        """Set the given fields on one record, leaving the others untouched.

        Raises:
            LedgerUpdateError: If the update was not applied.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release any held connections."""
