"""Tests for the Stripe processor adapter."""

import os
import pytest
from unittest.mock import MagicMock, patch
import stripe

from ledger_charger.errors import ChargeDeclinedError, InvoiceError, PaymentMethodError
from ledger_charger.processors import StripeProcessor, get_processor, SimulatorProcessor


def make_intent(intent_id="pi_123", status="requires_confirmation"):
    intent = MagicMock()
    intent.id = intent_id
    intent.status = status
    return intent


def make_method(method_id, brand="visa", last4="4242"):
    method = MagicMock()
    method.id = method_id
    method.type = "card"
    method.card = MagicMock()
    method.card.brand = brand
    method.card.last4 = last4
    return method


@pytest.fixture
def processor():
    return StripeProcessor(api_key="sk_test_key")


class TestStripeProcessorInit:
    """Tests for StripeProcessor initialization."""

    def test_init_with_api_key_argument(self):
        assert StripeProcessor(api_key="sk_test_key")._api_key == "sk_test_key"

    def test_init_with_env_variable(self):
        with patch.dict(os.environ, {"STRIPE_API_KEY": "sk_test_env_key"}):
            assert StripeProcessor()._api_key == "sk_test_env_key"

    def test_init_without_api_key_raises(self):
        with patch.dict(os.environ, {"STRIPE_API_KEY": ""}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                StripeProcessor()
            assert "STRIPE_API_KEY" in str(exc_info.value)

    def test_factory(self):
        assert isinstance(get_processor("stripe", api_key="sk_test_key"), StripeProcessor)
        assert isinstance(get_processor("Simulator"), SimulatorProcessor)
        with pytest.raises(ValueError):
            get_processor("paypal")


class TestListPaymentMethods:
    """Tests for listing saved cards."""

    def test_lists_all_pages(self, processor):
        page = MagicMock()
        page.auto_paging_iter.return_value = iter([make_method("pm_1"), make_method("pm_2", last4="1111")])

        with patch("stripe.PaymentMethod.list", return_value=page) as mock_list:
            methods = processor.list_payment_methods("cus_1")

        mock_list.assert_called_once_with(customer="cus_1", type="card")
        assert [m.id for m in methods] == ["pm_1", "pm_2"]
        assert methods[1].last4 == "1111"
        assert methods[0].customer_id == "cus_1"

    def test_sets_api_key(self, processor):
        page = MagicMock()
        page.auto_paging_iter.return_value = iter([])
        with patch("stripe.PaymentMethod.list", return_value=page):
            processor.list_payment_methods("cus_1")
        assert stripe.api_key == "sk_test_key"
        assert stripe.max_network_retries == 0

    def test_error_raises_payment_method_error(self, processor):
        with patch("stripe.PaymentMethod.list", side_effect=stripe.InvalidRequestError(
            message="No such customer: 'cus_missing'",
            param="customer",
        )):
            with pytest.raises(PaymentMethodError) as exc_info:
                processor.list_payment_methods("cus_missing")
        assert "No such customer" in str(exc_info.value)


class TestCreateAndConfirmCharge:
    """Tests for the confirm-on-create PaymentIntent flow."""

    def test_creates_confirmed_intent(self, processor):
        with patch("stripe.PaymentIntent.create", return_value=make_intent(status="succeeded")) as mock_create, \
                patch("stripe.PaymentIntent.confirm") as mock_confirm:
            confirmation = processor.create_and_confirm_charge(
                amount=1975,
                currency="USD",
                customer_id="cus_1",
                payment_method_id="pm_1",
                description="Cleaning/Product Replacement Charge",
                idempotency_key="charger-abc",
            )

        assert confirmation == "pi_123"
        mock_create.assert_called_once_with(
            amount=1975,
            currency="usd",
            customer="cus_1",
            payment_method="pm_1",
            description="Cleaning/Product Replacement Charge",
            confirm=True,
            idempotency_key="charger-abc",
        )
        mock_confirm.assert_not_called()

    def test_without_idempotency_key(self, processor):
        with patch("stripe.PaymentIntent.create", return_value=make_intent(status="succeeded")) as mock_create:
            processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc")
        assert "idempotency_key" not in mock_create.call_args.kwargs

    def test_replayed_key_returns_original_payment(self, processor):
        # a replayed create answers with the saved, already confirmed intent;
        # confirming it again would fail with payment_intent_unexpected_state
        with patch("stripe.PaymentIntent.create", return_value=make_intent(status="succeeded")) as mock_create, \
                patch("stripe.PaymentIntent.confirm", side_effect=stripe.InvalidRequestError(
                    message="This PaymentIntent's status is succeeded",
                    param=None,
                    code="payment_intent_unexpected_state",
                )) as mock_confirm:
            first = processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc", "charger-abc")
            second = processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc", "charger-abc")

        assert first == second == "pi_123"
        assert mock_create.call_count == 2
        mock_confirm.assert_not_called()

    def test_processing_counts_as_success(self, processor):
        with patch("stripe.PaymentIntent.create", return_value=make_intent(status="processing")):
            assert processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc") == "pi_123"

    def test_unsettled_status_raises(self, processor):
        with patch("stripe.PaymentIntent.create", return_value=make_intent(status="requires_action")):
            with pytest.raises(ChargeDeclinedError) as exc_info:
                processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc")
        assert "requires_action" in str(exc_info.value)

    def test_card_error(self, processor):
        with patch("stripe.PaymentIntent.create", side_effect=stripe.CardError(
            message="Your card was declined.",
            param="card",
            code="card_declined",
        )):
            with pytest.raises(ChargeDeclinedError) as exc_info:
                processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc")
        assert "card declined" in str(exc_info.value)

    def test_connection_error(self, processor):
        with patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError(
            message="Connection failed",
        )):
            with pytest.raises(ChargeDeclinedError) as exc_info:
                processor.create_and_confirm_charge(1975, "usd", "cus_1", "pm_1", "desc")
        assert "Connection failed" in str(exc_info.value)


class TestInvoices:
    """Tests for invoice items and invoices."""

    def test_create_invoice_item(self, processor):
        item = MagicMock()
        item.id = "ii_1"
        with patch("stripe.InvoiceItem.create", return_value=item) as mock_create:
            item_id = processor.create_invoice_item("cus_1", 2000, "USD", "Cleaning - Unit 4B (2024-03-01)",
                                                    metadata={"record_id": "rec1"},
                                                    idempotency_key="charger-line-abc")

        assert item_id == "ii_1"
        mock_create.assert_called_once_with(
            customer="cus_1",
            amount=2000,
            currency="usd",
            description="Cleaning - Unit 4B (2024-03-01)",
            metadata={"record_id": "rec1"},
            idempotency_key="charger-line-abc",
        )

    def test_invoice_item_without_key(self, processor):
        item = MagicMock()
        item.id = "ii_1"
        with patch("stripe.InvoiceItem.create", return_value=item) as mock_create:
            processor.create_invoice_item("cus_1", 2000, "usd", "desc")
        mock_create.assert_called_once_with(
            customer="cus_1",
            amount=2000,
            currency="usd",
            description="desc",
            metadata={},
        )

    def test_invoice_item_error(self, processor):
        with patch("stripe.InvoiceItem.create", side_effect=stripe.InvalidRequestError(
            message="Invalid amount",
            param="amount",
        )):
            with pytest.raises(InvoiceError):
                processor.create_invoice_item("cus_1", 2000, "usd", "desc")

    def test_create_invoice_includes_pending_items(self, processor):
        invoice = MagicMock()
        invoice.id = "in_1"
        with patch("stripe.Invoice.create", return_value=invoice) as mock_create:
            invoice_id = processor.create_invoice("cus_1", True, "send_invoice", 30, "Charges",
                                                  idempotency_key="charger-invoice-abc")

        assert invoice_id == "in_1"
        mock_create.assert_called_once_with(
            customer="cus_1",
            auto_advance=True,
            collection_method="send_invoice",
            days_until_due=30,
            description="Charges",
            pending_invoice_items_behavior="include",
            idempotency_key="charger-invoice-abc",
        )

    def test_create_invoice_without_key(self, processor):
        invoice = MagicMock()
        invoice.id = "in_1"
        with patch("stripe.Invoice.create", return_value=invoice) as mock_create:
            processor.create_invoice("cus_1", True, "send_invoice", 30, "Charges")
        assert "idempotency_key" not in mock_create.call_args.kwargs

    def test_invoice_error(self, processor):
        with patch("stripe.Invoice.create", side_effect=stripe.StripeError(message="Nothing to invoice")):
            with pytest.raises(InvoiceError) as exc_info:
                processor.create_invoice("cus_1", True, "send_invoice", 30, "Charges")
        assert "invoice not created" in str(exc_info.value)

    def test_delete_invoice_item(self, processor):
        with patch("stripe.InvoiceItem.delete") as mock_delete:
            processor.delete_invoice_item("ii_1")
        mock_delete.assert_called_once_with("ii_1")

    def test_delete_error(self, processor):
        with patch("stripe.InvoiceItem.delete", side_effect=stripe.InvalidRequestError(
            message="No such invoiceitem",
            param="id",
        )):
            with pytest.raises(InvoiceError):
                processor.delete_invoice_item("ii_missing")


def test_health_check(processor):
    assert processor.health_check() == {"ok": True, "provider": "stripe"}
