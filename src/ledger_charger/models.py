"""Models for one reconciliation pass."""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# What a ledger cell can hold. Date fields arrive as "YYYY-MM-DD" strings,
# rollups and linked records as lists.
FieldValue = Union[str, bool, int, float, List[Any], None]


class BillingRecord(BaseModel):
    """A raw record as returned by the ledger service."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Ledger record ID")
    fields: Dict[str, Any] = Field(default_factory=dict)
    created_time: Optional[str] = Field(None, description="Creation timestamp from the ledger")


class LedgerPage(BaseModel):
    """One page of records plus the continuation cursor, if any."""
    records: List[BillingRecord] = Field(default_factory=list)
    offset: Optional[str] = None


class NormalizedItem(BaseModel):
    """A record that passed every validation rule."""
    model_config = ConfigDict(frozen=True)

    source_record_id: str
    customer_id: str
    currency_code: str
    amount: Decimal = Field(..., gt=0, description="Amount in major units")
    billing_date: date
    quantity: Optional[int] = Field(None, gt=0)
    description: Optional[str] = None
    property_label: Optional[str] = None
    service_date: Optional[date] = None


class SkipReason(str, enum.Enum):
    """Why a record was left out of the current pass."""
    ALREADY_PAID = "already_paid"
    MISSING_FIELD = "missing_field"
    INVALID_FIELD = "invalid_field"
    UNSUPPORTED_CURRENCY = "unsupported_currency"
    NON_POSITIVE_AMOUNT = "non_positive_amount"
    DATE_IN_FUTURE = "date_in_future"
    DATE_TOO_STALE = "date_too_stale"


class Skip(BaseModel):
    """A record the validator rejected, with the reason for the log."""
    model_config = ConfigDict(frozen=True)

    record_id: str
    reason: SkipReason
    detail: str


class CustomerGroup(BaseModel):
    """All items of one customer in a pass, sharing one currency."""
    customer_id: str
    currency_code: str
    items: List[NormalizedItem] = Field(default_factory=list)

    @property
    def record_ids(self) -> List[str]:
        return [item.source_record_id for item in self.items]

    @property
    def total_amount(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0"))

    def chronological_items(self) -> List[NormalizedItem]:
        """Items ordered by service date, oldest first.

        The sort is stable, so items sharing a date keep their fetch order.
        Items without a service date sort last.
        """
        return sorted(
            self.items,
            key=lambda item: (item.service_date is None, item.service_date or date.min),
        )


class OutcomeStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ChargeOutcome(BaseModel):
    """Result of charging one customer group."""
    model_config = ConfigDict(frozen=True)

    customer_id: str
    status: OutcomeStatus
    confirmation_id: Optional[str] = None
    failure_detail: Optional[str] = None
    failed_lines: List[str] = Field(default_factory=list, description="Records whose invoice line failed")

    @model_validator(mode="after")
    def _check_status_fields(self) -> "ChargeOutcome":
        if self.status == OutcomeStatus.SUCCESS:
            if not self.confirmation_id or self.failure_detail is not None:
                raise ValueError("a successful outcome needs a confirmation_id and no failure_detail")
        else:
            if not self.failure_detail or self.confirmation_id is not None:
                raise ValueError("a failed outcome needs a failure_detail and no confirmation_id")
        return self

    @classmethod
    def success(cls, customer_id: str, confirmation_id: str, failed_lines: Optional[List[str]] = None) -> "ChargeOutcome":
        return cls(
            customer_id=customer_id,
            status=OutcomeStatus.SUCCESS,
            confirmation_id=confirmation_id,
            failed_lines=failed_lines or [],
        )

    @classmethod
    def failure(cls, customer_id: str, detail: str, failed_lines: Optional[List[str]] = None) -> "ChargeOutcome":
        return cls(
            customer_id=customer_id,
            status=OutcomeStatus.FAILURE,
            failure_detail=detail,
            failed_lines=failed_lines or [],
        )

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class LedgerUpdate(BaseModel):
    """Fields to patch on one ledger record."""
    model_config = ConfigDict(frozen=True)

    record_id: str
    fields: Dict[str, str]


class PassStatus(str, enum.Enum):
    """Status of a reconciliation pass."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class PassReport(BaseModel):
    """Statistics for one reconciliation pass."""
    id: str = Field(..., description="Pass ID")
    status: PassStatus = Field(default=PassStatus.IN_PROGRESS)
    mode: str = Field(..., description="Aggregation mode used for the pass")
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    # Statistics
    total_fetched: int = Field(default=0)
    total_eligible: int = Field(default=0)
    skipped: Dict[str, int] = Field(default_factory=dict)
    total_groups: int = Field(default=0)
    total_succeeded: int = Field(default=0)
    total_failed: int = Field(default=0)
    updates_applied: int = Field(default=0)
    updates_failed: int = Field(default=0)

    outcomes: List[ChargeOutcome] = Field(default_factory=list)

    # Error information
    error_message: Optional[str] = Field(None, description="Error message if the pass was aborted")

    def record_skip(self, reason: SkipReason) -> None:
        self.skipped[reason.value] = self.skipped.get(reason.value, 0) + 1

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())

    def to_summary_dict(self) -> Dict[str, Any]:
        """Return a summary of the pass without per-group outcomes."""
        return {
            "id": self.id,
            "status": self.status.value,
            "mode": self.mode,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "statistics": {
                "total_fetched": self.total_fetched,
                "total_eligible": self.total_eligible,
                "total_skipped": self.total_skipped,
                "skipped_by_reason": dict(self.skipped),
                "total_groups": self.total_groups,
                "total_succeeded": self.total_succeeded,
                "total_failed": self.total_failed,
                "updates_applied": self.updates_applied,
                "updates_failed": self.updates_failed,
            },
            "error_message": self.error_message,
        }

    def to_full_dict(self) -> Dict[str, Any]:
        """Return the summary plus every charge outcome."""
        result = self.to_summary_dict()
        result["outcomes"] = [o.model_dump(mode="json") for o in self.outcomes]
        return result
