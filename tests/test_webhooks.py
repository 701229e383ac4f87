import hashlib
import hmac
import json

from fastapi import status

from app.webhooks.moneroo_webhook import extract_moneroo_event

MONEROO_SECRET = "mnr_whsec_test_mock"
MONEYFUSION_SECRET = "mf_whsec_test_mock"


def _signed(payload: dict, secret: str) -> tuple[bytes, str]:
    raw = json.dumps(payload).encode("utf-8")
    return raw, hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def _post_moneroo(client, payload: dict, signature: str | None = None):
    raw, expected = _signed(payload, MONEROO_SECRET)
    return client.post(
        "/webhooks/moneroo",
        content=raw,
        headers={"x-moneroo-signature": expected if signature is None else signature},
    )


def _post_moneyfusion(client, payload: dict):
    raw, signature = _signed(payload, MONEYFUSION_SECRET)
    return client.post(
        "/webhooks/moneyfusion",
        content=raw,
        headers={"x-moneyfusion-signature": signature},
    )


def test_extract_moneroo_event_nested_and_flat():
    assert extract_moneroo_event({"data": {"id": "py_1", "status": "success"}}) == ("py_1", "success")
    assert extract_moneroo_event({"transaction_id": 42, "status": "failed"}) == ("42", "failed")
    assert extract_moneroo_event({"event": "payment.success"}) == (None, None)


def test_moneroo_success_confirms_order(client, db, make_order):
    order = make_order()
    transaction = order.transactions[0]
    payload = {"event": "payment.success", "data": {"id": transaction.transaction_id, "status": "success"}}

    response = _post_moneroo(client, payload)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"received": True, "applied": True, "outcome": "confirmed"}
    db.refresh(order)
    db.refresh(transaction)
    assert transaction.status == "success"
    assert transaction.gateway_payload == payload
    assert order.status == "confirmed"
    assert order.payment_status == "paid"


def test_moneroo_duplicate_notification_is_idempotent(client, db, make_order):
    order = make_order()
    payload = {"data": {"id": order.transactions[0].transaction_id, "status": "success"}}

    first = _post_moneroo(client, payload)
    second = _post_moneroo(client, payload)

    assert first.json()["applied"] is True
    assert second.status_code == status.HTTP_200_OK
    assert second.json() == {"received": True, "applied": False, "outcome": "unchanged"}


def test_moneroo_failure_marks_payment_failed(client, db, make_order):
    order = make_order()
    payload = {"data": {"id": order.transactions[0].transaction_id, "status": "failed"}}

    response = _post_moneroo(client, payload)

    assert response.json()["outcome"] == "failed"
    db.refresh(order)
    assert order.payment_status == "failed"
    assert order.status == "pending"


def test_moneroo_late_failure_for_settled_payment_is_acknowledged_not_applied(client, db, make_order):
    order = make_order(status="confirmed", payment_status="paid", transaction_status="success")
    payload = {"data": {"id": order.transactions[0].transaction_id, "status": "failed"}}

    response = _post_moneroo(client, payload)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"received": True, "applied": False, "reason": "TerminalRegression"}
    db.refresh(order)
    assert order.payment_status == "paid"
    assert order.transactions[0].status == "success"


def test_moneroo_pending_status_changes_nothing(client, db, make_order):
    order = make_order()
    payload = {"data": {"id": order.transactions[0].transaction_id, "status": "pending"}}

    response = _post_moneroo(client, payload)

    assert response.json()["applied"] is False
    db.refresh(order)
    assert order.payment_status == "pending"


def test_moneroo_invalid_signature(client, make_order):
    order = make_order()
    payload = {"data": {"id": order.transactions[0].transaction_id, "status": "success"}}

    response = _post_moneroo(client, payload, signature="deadbeef")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Invalid webhook signature"


def test_moneroo_missing_signature(client):
    response = client.post("/webhooks/moneroo", json={"data": {"id": "py_1", "status": "success"}})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing webhook signature"


def test_moneroo_unsigned_accepted_when_secret_unset(client, db, make_order, monkeypatch):
    monkeypatch.setenv("MONEROO_WEBHOOK_SECRET", "")
    order = make_order()

    response = client.post(
        "/webhooks/moneroo",
        json={"data": {"id": order.transactions[0].transaction_id, "status": "success"}},
    )

    assert response.status_code == status.HTTP_200_OK
    db.refresh(order)
    assert order.status == "confirmed"


def test_moneroo_unknown_transaction(client):
    response = _post_moneroo(client, {"data": {"id": "py_unknown", "status": "success"}})
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"]["error"] == "NotFound"


def test_moneroo_missing_transaction_id(client):
    response = _post_moneroo(client, {"data": {"status": "success"}})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_moneroo_invalid_json(client):
    raw = b"not json"
    signature = hmac.new(MONEROO_SECRET.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    response = client.post("/webhooks/moneroo", content=raw, headers={"x-moneroo-signature": signature})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid JSON"


def test_moneyfusion_completed_confirms_order(client, db, make_order):
    order = make_order(provider="moneyfusion", transaction_id="tok_abc")

    response = _post_moneyfusion(client, {"event": "payin.session.completed", "tokenPay": "tok_abc"})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["outcome"] == "confirmed"
    db.refresh(order)
    assert order.status == "confirmed"


def test_moneyfusion_cancelled_marks_payment_failed(client, db, make_order):
    order = make_order(provider="moneyfusion", transaction_id="tok_abc")

    response = _post_moneyfusion(client, {"event": "payin.session.cancelled", "tokenPay": "tok_abc"})

    assert response.json()["outcome"] == "failed"
    db.refresh(order)
    assert order.transactions[0].status == "cancelled"
    assert order.payment_status == "failed"


def test_moneyfusion_unknown_event_is_ignored(client, db, make_order):
    order = make_order(provider="moneyfusion", transaction_id="tok_abc")

    response = _post_moneyfusion(client, {"event": "payout.session.completed", "tokenPay": "tok_abc"})

    assert response.json() == {"received": True, "applied": False}
    db.refresh(order)
    assert order.payment_status == "pending"


def test_moneyfusion_token_of_other_provider_is_not_found(client, make_order):
    order = make_order(provider="moneroo")
    token = order.transactions[0].transaction_id

    response = _post_moneyfusion(client, {"event": "payin.session.completed", "tokenPay": token})

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_moneyfusion_requires_token(client):
    response = _post_moneyfusion(client, {"event": "payin.session.completed"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_moneroo_success_sends_one_confirmation_email(client, make_order, confirmation_emails):
    order = make_order()
    payload = {"data": {"id": order.transactions[0].transaction_id, "status": "success"}}

    _post_moneroo(client, payload)
    _post_moneroo(client, payload)

    confirmation_emails.assert_called_once()
    assert confirmation_emails.call_args.args[:3] == ("test@example.com", "Test User", order.order_number)


def test_moneroo_confirmation_email_failure_is_not_fatal(client, db, make_order, confirmation_emails):
    order = make_order()
    confirmation_emails.side_effect = RuntimeError("SMTP is not configured")

    response = _post_moneroo(client, {"data": {"id": order.transactions[0].transaction_id, "status": "success"}})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["outcome"] == "confirmed"
    db.refresh(order)
    assert order.payment_status == "paid"


def test_moneyfusion_cancelled_sends_no_confirmation_email(client, make_order, confirmation_emails):
    make_order(provider="moneyfusion", transaction_id="tok_abc")

    _post_moneyfusion(client, {"event": "payin.session.cancelled", "tokenPay": "tok_abc"})

    confirmation_emails.assert_not_called()
