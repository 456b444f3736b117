"""Simulator processor for exercising charge flows without real processor calls."""

import uuid
import time
import random
import logging
from typing import Dict, Any, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .base import ProcessorBase, PaymentMethod
from ..errors import ChargeDeclinedError, InvoiceError, PaymentMethodError

logger = logging.getLogger(__name__)


class SimulatorScenario(str, Enum):
    """Predefined test scenarios for the simulator."""
    SUCCESS = "success"
    NO_PAYMENT_METHODS = "no_payment_methods"
    LIST_ERROR = "list_error"
    DECLINE = "decline"
    INVOICE_ERROR = "invoice_error"
    LINE_ERROR = "line_error"


@dataclass
class SimulatedCharge:
    """In-memory representation of a confirmed charge."""
    id: str
    amount: int
    currency: str
    customer_id: str
    payment_method_id: str
    description: str
    idempotency_key: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class SimulatedInvoiceItem:
    id: str
    customer_id: str
    amount: int
    currency: str
    description: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    invoice_id: Optional[str] = None


@dataclass
class SimulatedInvoice:
    id: str
    customer_id: str
    auto_advance: bool
    collection_method: str
    days_until_due: int
    description: str
    item_ids: List[str] = field(default_factory=list)


@dataclass
class SimulatorConfig:
    """Configuration for simulator behavior."""
    success_rate: float = 1.0  # 0.0 to 1.0, applies to charges
    delay_ms: int = 0  # Simulated response delay in ms
    methods_per_customer: int = 1
    seed: Optional[int] = None  # Random seed for reproducibility


class SimulatorProcessor(ProcessorBase):
    """
    Simulator processor for running passes without a real payment processor.

    Features:
    - In-memory charges, invoice items and invoices
    - Special customer IDs for specific scenarios
    - Configurable charge success rate and response delay
    - Call log for assertions in tests
    """

    # Special customer IDs for triggering specific behaviors
    CUSTOMER_NO_METHODS = "sim_cus_no_methods"
    CUSTOMER_LIST_ERROR = "sim_cus_list_error"
    CUSTOMER_DECLINE = "sim_cus_decline"
    CUSTOMER_INVOICE_ERROR = "sim_cus_invoice_error"
    CUSTOMER_LINE_ERROR = "sim_cus_line_error"
    # Any invoice line whose description contains this fails
    LINE_FAILURE_MARKER = "sim_line_fail"

    def __init__(self, config: Optional[SimulatorConfig] = None):
        """Initialize the simulator with optional configuration."""
        self.config = config or SimulatorConfig()
        self._rng = random.Random(self.config.seed)
        self.charges: Dict[str, SimulatedCharge] = {}
        self.invoice_items: Dict[str, SimulatedInvoiceItem] = {}
        self.invoices: Dict[str, SimulatedInvoice] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        # idempotency key -> ID of the invoice item or invoice first created with it
        self._replays: Dict[str, str] = {}
        logger.info("SimulatorProcessor initialized")

    def _generate_id(self, prefix: str) -> str:
        return f"{prefix}_sim_{uuid.uuid4().hex[:24]}"

    def _apply_delay(self) -> None:
        if self.config.delay_ms > 0:
            time.sleep(self.config.delay_ms / 1000.0)

    def _scenario_for(self, customer_id: str) -> SimulatorScenario:
        customer_scenarios = {
            self.CUSTOMER_NO_METHODS: SimulatorScenario.NO_PAYMENT_METHODS,
            self.CUSTOMER_LIST_ERROR: SimulatorScenario.LIST_ERROR,
            self.CUSTOMER_DECLINE: SimulatorScenario.DECLINE,
            self.CUSTOMER_INVOICE_ERROR: SimulatorScenario.INVOICE_ERROR,
            self.CUSTOMER_LINE_ERROR: SimulatorScenario.LINE_ERROR,
        }
        return customer_scenarios.get(customer_id, SimulatorScenario.SUCCESS)

    def calls_named(self, name: str) -> List[Dict[str, Any]]:
        """Arguments of every recorded call to ``name`` (for testing)."""
        return [args for call, args in self.calls if call == name]

    def list_payment_methods(self, customer_id: str, method_type: str = "card") -> List[PaymentMethod]:
        self._apply_delay()
        self.calls.append(("list_payment_methods", {"customer_id": customer_id, "method_type": method_type}))
        scenario = self._scenario_for(customer_id)
        if scenario == SimulatorScenario.LIST_ERROR:
            raise PaymentMethodError("simulated payment method listing failure")
        if scenario == SimulatorScenario.NO_PAYMENT_METHODS:
            return []
        return [
            PaymentMethod(id=f"pm_sim_{customer_id}_{n}", type=method_type, customer_id=customer_id,
                          brand="visa", last4=f"{4242 + n}")
            for n in range(self.config.methods_per_customer)
        ]

    def create_and_confirm_charge(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._apply_delay()
        self.calls.append(("create_and_confirm_charge", {
            "amount": amount, "currency": currency, "customer_id": customer_id,
            "payment_method_id": payment_method_id, "description": description,
            "idempotency_key": idempotency_key,
        }))
        if idempotency_key:
            for charge in self.charges.values():
                if charge.idempotency_key == idempotency_key:
                    return charge.id
        if self._scenario_for(customer_id) == SimulatorScenario.DECLINE:
            raise ChargeDeclinedError("card declined: Your card was declined.")
        if self._rng.random() >= self.config.success_rate:
            raise ChargeDeclinedError("card declined: simulated random decline")

        charge = SimulatedCharge(
            id=self._generate_id("pi"), amount=amount, currency=currency, customer_id=customer_id,
            payment_method_id=payment_method_id, description=description, idempotency_key=idempotency_key,
        )
        self.charges[charge.id] = charge
        return charge.id

    def create_invoice_item(
        self,
        customer_id: str,
        amount: int,
        currency: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._apply_delay()
        self.calls.append(("create_invoice_item", {
            "customer_id": customer_id, "amount": amount, "currency": currency,
            "description": description, "metadata": dict(metadata or {}),
            "idempotency_key": idempotency_key,
        }))
        if idempotency_key in self._replays:
            return self._replays[idempotency_key]
        if self._scenario_for(customer_id) == SimulatorScenario.LINE_ERROR or self.LINE_FAILURE_MARKER in description:
            raise InvoiceError("invoice item not created: simulated line failure")
        item = SimulatedInvoiceItem(
            id=self._generate_id("ii"), customer_id=customer_id, amount=amount,
            currency=currency, description=description, metadata=dict(metadata or {}),
        )
        self.invoice_items[item.id] = item
        if idempotency_key:
            self._replays[idempotency_key] = item.id
        return item.id

    def create_invoice(
        self,
        customer_id: str,
        auto_advance: bool,
        collection_method: str,
        days_until_due: int,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._apply_delay()
        self.calls.append(("create_invoice", {
            "customer_id": customer_id, "auto_advance": auto_advance,
            "collection_method": collection_method, "days_until_due": days_until_due,
            "description": description, "idempotency_key": idempotency_key,
        }))
        if idempotency_key in self._replays:
            return self._replays[idempotency_key]
        if self._scenario_for(customer_id) == SimulatorScenario.INVOICE_ERROR:
            raise InvoiceError("invoice not created: simulated invoice failure")
        invoice = SimulatedInvoice(
            id=self._generate_id("in"), customer_id=customer_id, auto_advance=auto_advance,
            collection_method=collection_method, days_until_due=days_until_due, description=description,
        )
        # sweep pending items, like the real processor does
        for item in self.invoice_items.values():
            if item.customer_id == customer_id and item.invoice_id is None:
                item.invoice_id = invoice.id
                invoice.item_ids.append(item.id)
        self.invoices[invoice.id] = invoice
        if idempotency_key:
            self._replays[idempotency_key] = invoice.id
        return invoice.id

    def delete_invoice_item(self, item_id: str) -> None:
        self.calls.append(("delete_invoice_item", {"item_id": item_id}))
        if item_id not in self.invoice_items:
            raise InvoiceError(f"invoice item {item_id} not deleted: no such invoice item")
        del self.invoice_items[item_id]

    def invoice_lines(self, invoice_id: str) -> List[SimulatedInvoiceItem]:
        """Invoice items attached to an invoice, in creation order (for testing)."""
        invoice = self.invoices[invoice_id]
        return [self.invoice_items[item_id] for item_id in invoice.item_ids]

    def health_check(self) -> Dict[str, Any]:
        """Return health status of the simulator."""
        return {
            "ok": True,
            "provider": "simulator",
            "charge_count": len(self.charges),
            "invoice_count": len(self.invoices),
            "config": {
                "success_rate": self.config.success_rate,
                "delay_ms": self.config.delay_ms,
                "methods_per_customer": self.config.methods_per_customer,
            },
        }
