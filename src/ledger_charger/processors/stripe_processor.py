import os
import logging
from typing import Dict, Any, List, Optional
import stripe
from .base import ProcessorBase, PaymentMethod
from ..errors import ChargeDeclinedError, InvoiceError, PaymentMethodError

logger = logging.getLogger(__name__)

# PaymentIntent statuses that mean the money is on its way
SETTLED_STATUSES = frozenset(["succeeded", "processing"])


class StripeProcessor(ProcessorBase):
    """
    Stripe processor using stripe-python resources. Lump-sum charges go through
    PaymentIntents against a saved card; itemized charges become invoice items
    swept into a send_invoice Invoice.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30.0):
        self._api_key = api_key or os.getenv("STRIPE_API_KEY")
        if not self._api_key:
            raise ValueError(
                "STRIPE_API_KEY must be provided either as argument or environment variable"
            )
        self.timeout = timeout
        self._http_client = stripe.RequestsClient(timeout=timeout)

    def _configure_stripe(self) -> None:
        stripe.api_key = self._api_key
        # a hung call would stall the whole pass; a failed one is retried by re-polling
        stripe.max_network_retries = 0
        stripe.default_http_client = self._http_client

    def list_payment_methods(self, customer_id: str, method_type: str = "card") -> List[PaymentMethod]:
        self._configure_stripe()
        try:
            page = stripe.PaymentMethod.list(customer=customer_id, type=method_type)
            methods = []
            for pm in page.auto_paging_iter():
                card = getattr(pm, "card", None)
                methods.append(PaymentMethod(
                    id=pm.id,
                    type=pm.type,
                    customer_id=customer_id,
                    brand=getattr(card, "brand", None) if card else None,
                    last4=getattr(card, "last4", None) if card else None,
                ))
            return methods
        except stripe.StripeError as e:
            logger.error(f"Listing payment methods for {customer_id} failed: {type(e).__name__}")
            raise PaymentMethodError(_error_message(e)) from e

    def create_and_confirm_charge(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._configure_stripe()
        try:
            params: Dict[str, Any] = dict(
                amount=amount,
                currency=currency.lower(),
                customer=customer_id,
                payment_method=payment_method_id,
                description=description,
                confirm=True,
            )
            if idempotency_key:
                params["idempotency_key"] = idempotency_key
            # confirm=True: a replayed key returns the confirmed intent
            confirmed = stripe.PaymentIntent.create(**params)
        except stripe.CardError as e:
            raise ChargeDeclinedError(f"card declined: {_error_message(e)}") from e
        except stripe.StripeError as e:
            logger.error(f"Charging customer {customer_id} failed: {type(e).__name__}")
            raise ChargeDeclinedError(_error_message(e)) from e

        if confirmed.status not in SETTLED_STATUSES:
            raise ChargeDeclinedError(f"payment intent {confirmed.id} ended in status {confirmed.status}")
        return confirmed.id

    def create_invoice_item(
        self,
        customer_id: str,
        amount: int,
        currency: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._configure_stripe()
        try:
            params: Dict[str, Any] = dict(
                customer=customer_id,
                amount=amount,
                currency=currency.lower(),
                description=description,
                metadata=metadata or {},
            )
            if idempotency_key:
                params["idempotency_key"] = idempotency_key
            item = stripe.InvoiceItem.create(**params)
            return item.id
        except stripe.StripeError as e:
            raise InvoiceError(f"invoice item not created: {_error_message(e)}") from e

    def create_invoice(
        self,
        customer_id: str,
        auto_advance: bool,
        collection_method: str,
        days_until_due: int,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._configure_stripe()
        try:
            params: Dict[str, Any] = dict(
                customer=customer_id,
                auto_advance=auto_advance,
                collection_method=collection_method,
                days_until_due=days_until_due,
                description=description,
                pending_invoice_items_behavior="include",
            )
            if idempotency_key:
                params["idempotency_key"] = idempotency_key
            invoice = stripe.Invoice.create(**params)
            return invoice.id
        except stripe.StripeError as e:
            raise InvoiceError(f"invoice not created: {_error_message(e)}") from e

    def delete_invoice_item(self, item_id: str) -> None:
        self._configure_stripe()
        try:
            stripe.InvoiceItem.delete(item_id)
        except stripe.StripeError as e:
            raise InvoiceError(f"invoice item {item_id} not deleted: {_error_message(e)}") from e

    def health_check(self) -> Dict[str, Any]:
        return {"ok": bool(self._api_key), "provider": "stripe"}


def _error_message(e: "stripe.StripeError") -> str:
    return getattr(e, "user_message", None) or str(e) or type(e).__name__
