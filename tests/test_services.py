import asyncio
import json
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from app.models.status import TransactionStatus
from app.services import email_service
from app.services.exceptions import GatewayUnreachable
from app.services.gateway_client import gateway_amount
from app.services.moneroo_service import MonerooClient
from app.services.moneyfusion_service import MoneyFusionClient
from app.services.payment_gateways import get_checkout_client, get_enabled_providers, get_payment_verifiers
from app.services.payments import map_gateway_status


def _moneroo(handler) -> MonerooClient:
    return MonerooClient(
        api_key="mnr_test_key",
        base_url="https://moneroo.test/v1",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("success", TransactionStatus.SUCCESS),
        ("Successful", TransactionStatus.SUCCESS),
        ("paid", TransactionStatus.SUCCESS),
        ("failed", TransactionStatus.FAILED),
        ("no paid", TransactionStatus.FAILED),
        ("canceled", TransactionStatus.CANCELLED),
        ("pending", TransactionStatus.PENDING),
        ("processing", TransactionStatus.PENDING),
        (None, TransactionStatus.PENDING),
    ],
)
def test_map_gateway_status(raw, expected):
    assert map_gateway_status(raw) == expected


def test_moneroo_verify_success():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/v1/payments/py_123/verify"
        assert request.headers["Authorization"] == "Bearer mnr_test_key"
        return httpx.Response(200, json={"data": {"id": "py_123", "status": "success"}})

    verification = asyncio.run(_moneroo(handler).verify("py_123"))

    assert verification.success is True
    assert verification.status == TransactionStatus.SUCCESS
    assert verification.payload["data"]["id"] == "py_123"


def test_moneroo_verify_unknown_status_stays_pending():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"status": "processing"}})

    verification = asyncio.run(_moneroo(handler).verify("py_123"))

    assert verification.success is False
    assert verification.status == TransactionStatus.PENDING


def test_moneroo_http_error_is_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "maintenance"})

    with pytest.raises(GatewayUnreachable) as exc_info:
        asyncio.run(_moneroo(handler).verify("py_123"))
    assert "HTTP 503" in exc_info.value.message


def test_moneroo_connection_error_is_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayUnreachable) as exc_info:
        asyncio.run(_moneroo(handler).verify("py_123"))
    assert "ConnectError" in exc_info.value.message


def test_moneroo_non_json_response_is_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway error</html>")

    with pytest.raises(GatewayUnreachable):
        asyncio.run(_moneroo(handler).verify("py_123"))


def test_moneroo_requires_api_key():
    with pytest.raises(ValueError, match="MONEROO_API_KEY"):
        MonerooClient(api_key="")


def test_moneroo_initialize_payment():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={"data": {"id": "py_new", "checkout_url": "https://checkout.moneroo.test/py_new"}},
        )

    session = asyncio.run(
        _moneroo(handler).initialize_payment(
            amount=Decimal("5000.00"),
            currency="XAF",
            description="Order ORD-1",
            customer_email="buyer@example.com",
            customer_name="Ada Lovelace",
            return_url="https://shop.example.com/payment-success",
            metadata={"order_number": "ORD-1"},
        )
    )

    assert session.transaction_id == "py_new"
    assert session.checkout_url == "https://checkout.moneroo.test/py_new"
    assert captured["path"] == "/v1/payments/initialize"
    assert captured["body"]["amount"] == 5000
    assert captured["body"]["customer"] == {
        "email": "buyer@example.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
    }


def test_moneroo_initialize_without_checkout_url_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"id": "py_new"}})

    with pytest.raises(GatewayUnreachable):
        asyncio.run(
            _moneroo(handler).initialize_payment(
                amount=Decimal("100"),
                currency="XAF",
                description="Order",
                customer_email="buyer@example.com",
                customer_name=None,
                return_url="https://shop.example.com/done",
                metadata={},
            )
        )


def test_moneyfusion_verify_uses_statut_field():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/paiementNotif/tok_42"
        return httpx.Response(200, json={"statut": True, "data": {"statut": "paid", "tokenPay": "tok_42"}})

    client = MoneyFusionClient(base_url="https://moneyfusion.test/api/", transport=httpx.MockTransport(handler))
    verification = asyncio.run(client.verify("tok_42"))

    assert verification.status == TransactionStatus.SUCCESS
    assert verification.success is True


def test_moneyfusion_failure_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"statut": "failure"}})

    client = MoneyFusionClient(base_url="https://moneyfusion.test/api/", transport=httpx.MockTransport(handler))
    assert asyncio.run(client.verify("tok_42")).status == TransactionStatus.FAILED


def test_enabled_gateways_follow_configuration(monkeypatch):
    assert get_enabled_providers() == ["moneroo", "moneyfusion"]
    assert set(get_payment_verifiers()) == {"moneroo", "moneyfusion"}

    monkeypatch.setenv("MONEROO_API_KEY", "")
    assert get_enabled_providers() == ["moneyfusion"]
    assert get_checkout_client() is None


def test_send_digital_delivery_email(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_FROM_EMAIL", "shop@example.com")
    monkeypatch.setenv("SMTP_USER", "")

    with patch("app.services.email_service.smtplib.SMTP") as mock_smtp:
        email_service.send_digital_delivery_email(
            "buyer@example.com",
            "Buyer <b>",
            "ORD-1",
            [("E-book", "https://files.example.com/ebook.pdf")],
        )

    smtp = mock_smtp.return_value.__enter__.return_value
    smtp.starttls.assert_called_once()
    smtp.login.assert_not_called()
    message = smtp.send_message.call_args.args[0]
    assert message["To"] == "buyer@example.com"
    assert message["Subject"] == "Your order ORD-1 is ready"
    html = message.get_body(preferencelist=("html",)).get_content()
    assert "Buyer &lt;b&gt;" in html
    assert "https://files.example.com/ebook.pdf" in html


def test_send_email_requires_smtp_configuration(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "")
    with pytest.raises(RuntimeError, match="SMTP is not configured"):
        email_service.send_vendor_payment_email(
            "vendor@example.com", "Vendor", "ORD-1", Decimal("5000.00"), "XAF", ["E-book"]
        )


@pytest.mark.parametrize(
    "amount,currency,expected",
    [
        (Decimal("5000.00"), "XAF", 5000),
        (Decimal("19.99"), "EUR", 19.99),
        (Decimal("20.00"), "USD", 20),
        (Decimal("0.50"), "NGN", 0.5),
    ],
)
def test_gateway_amount_keeps_full_value(amount, currency, expected):
    assert gateway_amount(amount, currency) == expected


@pytest.mark.parametrize(
    "amount,currency",
    [(Decimal("5000.50"), "XAF"), (Decimal("1.5"), "xof"), (Decimal("19.999"), "EUR")],
)
def test_gateway_amount_rejects_unrepresentable_amounts(amount, currency):
    with pytest.raises(ValueError):
        gateway_amount(amount, currency)


def test_moneroo_initialize_payment_sends_cents():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={"data": {"id": "py_eur", "checkout_url": "https://checkout.moneroo.test/py_eur"}},
        )

    asyncio.run(
        _moneroo(handler).initialize_payment(
            amount=Decimal("19.99"),
            currency="EUR",
            description="Order ORD-2",
            customer_email="buyer@example.com",
            customer_name="Ada",
            return_url="https://shop.example.com/payment-success",
            metadata={},
        )
    )

    assert Decimal(str(captured["body"]["amount"])) == Decimal("19.99")


def test_send_order_confirmation_email(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_FROM_EMAIL", "shop@example.com")

    with patch("app.services.email_service.smtplib.SMTP") as mock_smtp:
        email_service.send_order_confirmation_email(
            "buyer@example.com", "Buyer", "ORD-7", Decimal("19.99"), "EUR"
        )

    message = mock_smtp.return_value.__enter__.return_value.send_message.call_args.args[0]
    assert message["Subject"] == "Order ORD-7 confirmed"
    assert "19.99 EUR" in message.get_body(preferencelist=("plain",)).get_content()
