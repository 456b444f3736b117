from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from pydantic import BaseModel

# Canonical models
class PaymentMethod(BaseModel):
    id: str
    type: str = "card"
    customer_id: Optional[str] = None
    brand: Optional[str] = None
    last4: Optional[str] = None

class ProcessorBase(ABC):
    """
    Minimal payment processor interface used by the charge executor.
    Amounts are integers in minor units. Failures raise ProcessorError
    subclasses; implementations never retry on their own.
    """

    @abstractmethod
    def list_payment_methods(self, customer_id: str, method_type: str = "card") -> List[PaymentMethod]:
        raise NotImplementedError

    @abstractmethod
    def create_and_confirm_charge(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Create a charge and confirm it immediately. Returns the confirmation ID.
        """
        raise NotImplementedError

    @abstractmethod
    def create_invoice_item(
        self,
        customer_id: str,
        amount: int,
        currency: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    def create_invoice(
        self,
        customer_id: str,
        auto_advance: bool,
        collection_method: str,
        days_until_due: int,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Create an invoice sweeping the customer's pending invoice items. Returns the invoice ID.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_invoice_item(self, item_id: str) -> None:
        raise NotImplementedError

    def health_check(self) -> Dict[str, Any]:
        return {"ok": True}
