"""
Tests for the PayHere gateway adapter.
"""

import hashlib
import re
import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.errors import ErrorKind
from app.services.payhere_gateway import (
    PayHereCustomer,
    PayHereGateway,
    WebhookEvent,
    format_amount,
    generate_order_id,
    parse_method,
    status_message,
)

MERCHANT_ID = "1211149"
SECRET = "test-merchant-secret"


def md5(value: str) -> str:
    return hashlib.md5(value.encode()).hexdigest().upper()


@pytest.fixture
def gateway():
    return PayHereGateway(
        merchant_id=MERCHANT_ID,
        merchant_secret=SECRET,
        mode="sandbox",
        base_url="https://payments.test/",
    )


@pytest.fixture
def order():
    return SimpleNamespace(
        id=uuid.uuid4(),
        external_order_id="DON17000000000001234",
        amount=Decimal("1000"),
        currency="LKR",
    )


CUSTOMER = PayHereCustomer(
    first_name="Nimal",
    last_name="Perera",
    email="nimal@example.com",
    phone="0771234567",
)


class TestFormatAmount:
    """Tests for PayHere amount formatting."""

    def test_two_decimal_places(self):
        assert format_amount(1000) == "1000.00"
        assert format_amount("12.5") == "12.50"
        assert format_amount(Decimal("99.999")) == "100.00"

    def test_no_grouping_separator(self):
        assert format_amount(Decimal("1234567.8")) == "1234567.80"

    def test_exponent_input(self):
        assert format_amount(Decimal("1E+3")) == "1000.00"

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity"])
    def test_malformed_amount_raises(self, value):
        with pytest.raises(ValueError):
            format_amount(value)


class TestBuildPaymentRequest:
    """Tests for outbound checkout payloads."""

    def test_hash_matches_payhere_scheme(self, gateway, order):
        data = gateway.build_payment_request(order, CUSTOMER, items="Donation")

        expected = md5(MERCHANT_ID + order.external_order_id + "1000.00" + "LKR" + md5(SECRET))
        assert data["hash"] == expected
        assert data["hash"] == data["hash"].upper()

    def test_fields(self, gateway, order):
        data = gateway.build_payment_request(order, CUSTOMER, items="Donation", custom_2="ONE_TIME")

        assert data["sandbox"] is True
        assert data["merchant_id"] == MERCHANT_ID
        assert data["order_id"] == order.external_order_id
        assert data["amount"] == "1000.00"
        assert data["currency"] == "LKR"
        assert data["first_name"] == "Nimal"
        assert data["custom_1"] == str(order.id)
        assert data["custom_2"] == "ONE_TIME"
        assert data["notify_url"] == "https://payments.test/webhooks/payhere"
        assert data["checkout_url"].startswith("https://sandbox.payhere.lk")

    def test_deterministic(self, gateway, order):
        first = gateway.build_payment_request(order, CUSTOMER, items="Donation")
        second = gateway.build_payment_request(order, CUSTOMER, items="Donation")
        assert first == second

    def test_live_mode_checkout_url(self, order):
        live = PayHereGateway(MERCHANT_ID, SECRET, mode="live", base_url="https://x")
        data = live.build_payment_request(order, CUSTOMER, items="Donation")
        assert data["sandbox"] is False
        assert data["checkout_url"] == "https://www.payhere.lk/pay/checkout"


class TestVerifyNotification:
    """Tests for inbound notification verification."""

    def _event(self, payhere_form, **overrides) -> WebhookEvent:
        form = payhere_form("DON17000000000001234", "1000.00")
        form.update(overrides)
        return WebhookEvent.from_form(form).value

    def test_accepts_request_fields_echoed_back(self, gateway, order, payhere_form):
        data = gateway.build_payment_request(order, CUSTOMER, items="Donation")
        form = payhere_form(data["order_id"], data["amount"], currency=data["currency"])

        event = WebhookEvent.from_form(form).value
        assert gateway.verify_notification(event) is True

    def test_signature_case_insensitive(self, gateway, payhere_form):
        form = payhere_form("DON17000000000001234", "1000.00")
        form["md5sig"] = form["md5sig"].lower()
        event = WebhookEvent.from_form(form).value
        assert gateway.verify_notification(event) is True

    @pytest.mark.parametrize("field,value", [
        ("order_id", "DON17000000000009999"),
        ("payhere_amount", "1000.01"),
        ("payhere_currency", "USD"),
        ("status_code", "-2"),
        ("md5sig", "0" * 32),
    ])
    def test_rejects_any_perturbed_field(self, gateway, payhere_form, field, value):
        event = self._event(payhere_form, **{field: value})
        assert gateway.verify_notification(event) is False

    def test_rejects_foreign_merchant(self, gateway, payhere_form):
        form = payhere_form("DON1", "1000.00", merchant_id="999999")
        event = WebhookEvent.from_form(form).value
        assert gateway.verify_notification(event) is False

    def test_rejects_wrong_secret(self, gateway, payhere_form):
        form = payhere_form("DON1", "1000.00", secret="other-secret")
        event = WebhookEvent.from_form(form).value
        assert gateway.verify_notification(event) is False

    def test_rejects_malformed_amount(self, gateway, payhere_form):
        event = self._event(payhere_form, payhere_amount="ten")
        assert gateway.verify_notification(event) is False

    def test_fails_closed_without_secret(self, payhere_form):
        unconfigured = PayHereGateway(MERCHANT_ID, "", base_url="https://x")
        form = payhere_form("DON1", "1000.00", secret="")
        event = WebhookEvent.from_form(form).value
        assert unconfigured.verify_notification(event) is False

    def test_explicit_secret_argument(self, gateway, payhere_form):
        form = payhere_form("DON1", "1000.00", secret="rotated")
        event = WebhookEvent.from_form(form).value
        assert gateway.verify_notification(event, secret="rotated") is True


class TestWebhookEventParsing:
    """Tests for parsing the notify form."""

    def test_parses_fields(self, payhere_form):
        result = WebhookEvent.from_form(payhere_form("DON1", "50.00", custom_1="abc"))
        assert result.ok
        assert result.value.external_order_id == "DON1"
        assert result.value.external_payment_id == "320025071278"
        assert result.value.custom_1 == "abc"

    @pytest.mark.parametrize("missing", ["merchant_id", "order_id", "payhere_amount", "status_code", "md5sig"])
    def test_missing_required_field(self, payhere_form, missing):
        form = payhere_form("DON1", "50.00")
        del form[missing]

        result = WebhookEvent.from_form(form)
        assert not result.ok
        assert result.error == ErrorKind.MALFORMED_EVENT
        assert missing in result.message

    def test_blank_field_counts_as_missing(self, payhere_form):
        form = payhere_form("DON1", "50.00", status_code="  ")
        result = WebhookEvent.from_form(form)
        assert result.error == ErrorKind.MALFORMED_EVENT


class TestHelpers:
    def test_generate_order_id_format(self):
        assert re.fullmatch(r"DON\d{13}\d{4}", generate_order_id("DON"))
        assert generate_order_id("SES").startswith("SES")

    def test_parse_method(self):
        assert parse_method(None) == "CARD"
        assert parse_method("MASTER") == "MASTERCARD"
        assert parse_method("Genie") == "HELAPAY"
        assert parse_method("test") == "TEST"

    def test_status_message(self):
        assert status_message("2") == "Success"
        assert status_message("-3") == "Chargedback"
        assert status_message("7") == "Unknown"
