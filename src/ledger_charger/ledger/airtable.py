"""Airtable ledger client."""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from ..config import MAX_PAGE_SIZE
from ..errors import LedgerFetchError, LedgerUpdateError
from ..models import BillingRecord, LedgerPage
from .base import LedgerBase

logger = logging.getLogger(__name__)

AIRTABLE_API_URL = "https://api.airtable.com/v0"


class AirtableLedger(LedgerBase):
    """Billing records stored in one Airtable table."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        table_name: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the Airtable client.

        Args:
            api_key: Airtable personal access token.
            base_id: ID of the base holding the table.
            table_name: Table name or ID.
            timeout: Per-request timeout in seconds.
            client: Optional preconfigured httpx client (used in tests).

        Raises:
            ValueError: If the key or base ID is missing.
        """
        if not api_key or not base_id:
            raise ValueError("Airtable API key and base ID are required")
        self.base_id = base_id
        self.table_name = table_name
        self._client = client or httpx.Client(base_url=AIRTABLE_API_URL, timeout=timeout)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    @property
    def _table_path(self) -> str:
        return f"/{self.base_id}/{quote(self.table_name, safe='')}"

    def _to_record(self, raw: Dict[str, Any]) -> BillingRecord:
        return BillingRecord(
            id=raw["id"],
            fields=raw.get("fields") or {},
            created_time=raw.get("createdTime"),
        )

    def list_records(
        self,
        fields: List[str],
        filter_formula: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
        offset: Optional[str] = None,
    ) -> LedgerPage:
        params: List[Tuple[str, Any]] = [("fields[]", name) for name in fields if name]
        if filter_formula:
            params.append(("filterByFormula", filter_formula))
        params.append(("pageSize", min(page_size, MAX_PAGE_SIZE)))
        if offset:
            params.append(("offset", offset))

        try:
            response = self._client.get(self._table_path, params=params, headers=self._headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Airtable list returned HTTP {e.response.status_code}")
            raise LedgerFetchError(f"Airtable list failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Airtable list failed: {type(e).__name__}")
            raise LedgerFetchError(f"Airtable list failed: {e}") from e
        except ValueError as e:
            raise LedgerFetchError("Airtable list returned invalid JSON") from e

        try:
            records = [self._to_record(raw) for raw in payload.get("records", [])]
        except (KeyError, TypeError, AttributeError) as e:
            raise LedgerFetchError("Airtable list returned malformed records") from e
        return LedgerPage(records=records, offset=payload.get("offset") or None)

    def update_record(self, record_id: str, fields: Dict[str, str]) -> None:
        path = f"{self._table_path}/{quote(record_id, safe='')}"
        try:
            response = self._client.patch(path, json={"fields": fields}, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise LedgerUpdateError(record_id, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise LedgerUpdateError(record_id, f"{type(e).__name__}: {e}") from e

    def close(self) -> None:
        self._client.close()
