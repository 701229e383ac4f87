from unittest.mock import patch

import pytest
from conftest import FakeVerifier
from fastapi import status

from app.main import app
from app.models import AdminActionLog, AutoProcessLog
from app.models.status import TransactionStatus
from app.services.payment_gateways import get_payment_verifiers


@pytest.fixture
def verifier(client):
    fake = FakeVerifier()
    app.dependency_overrides[get_payment_verifiers] = lambda: {"moneroo": fake}
    return fake


@pytest.fixture(autouse=True)
def mock_emails():
    with patch("app.services.fulfillment.send_digital_delivery_email"), patch(
        "app.services.fulfillment.send_vendor_payment_email"
    ):
        yield


def test_admin_routes_require_authentication(client):
    response = client.get("/api/admin/orders/stats")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_admin_routes_reject_customers(client, auth_headers):
    response = client.get("/api/admin/orders/stats", headers=auth_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "Admin access required"


def test_force_success_endpoint(client, db, make_order, admin_headers):
    order = make_order()
    transaction_id = order.transactions[0].transaction_id

    response = client.post(
        "/api/admin/payments/force-success",
        json={"transaction_id": transaction_id, "notes": "customer sent receipt"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["outcome"] == "applied"
    assert data["order_number"] == order.order_number
    assert data["after"]["order"]["payment_status"] == "paid"

    db.refresh(order)
    assert order.status == "confirmed"
    # auto-process runs after a real change
    assert order.fulfillment_status == "fulfilled"


def test_force_success_twice_reports_noop(client, make_order, admin_headers):
    order = make_order()
    body = {"transaction_id": order.transactions[0].transaction_id}

    client.post("/api/admin/payments/force-success", json=body, headers=admin_headers)
    response = client.post("/api/admin/payments/force-success", json=body, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["outcome"] == "noop"


def test_force_success_unknown_transaction(client, admin_headers):
    response = client.post(
        "/api/admin/payments/force-success",
        json={"transaction_id": "txn_missing"},
        headers=admin_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"]["error"] == "NotFound"


def test_confirm_order_endpoint(client, db, make_order, admin_headers):
    order = make_order()

    response = client.post(f"/api/admin/orders/{order.id}/confirm", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["action"] == "confirm_order"
    db.refresh(order)
    assert order.payment_status == "paid"


def test_approve_rejected_subscription_maps_to_conflict(client, db, make_subscription, admin_headers):
    subscription = make_subscription(status="rejected")

    response = client.post(
        f"/api/admin/subscriptions/{subscription.id}/approve",
        json={"notes": "second attempt"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"] == {
        "error": "TransitionRejected",
        "reason": "TerminalRegression",
        "message": "Subscription is already rejected",
    }
    assert db.query(AdminActionLog).one().outcome == "rejected"


def test_reconcile_endpoint(client, db, make_order, admin_headers, verifier):
    order = make_order()
    verifier.statuses[order.transactions[0].transaction_id] = TransactionStatus.SUCCESS

    response = client.post("/api/admin/reconcile", json={"manual": True}, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["processed"] == 1
    assert data["total"] == 1
    assert data["errors"] == []
    assert data["auto_process"]["processed"] == 1
    db.refresh(order)
    assert order.fulfillment_status == "fulfilled"


def test_reconcile_endpoint_without_body_uses_defaults(client, make_order, admin_headers, verifier):
    make_order()

    response = client.post("/api/admin/reconcile", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["unresolved"] == 1
    assert response.json()["auto_process"] is None


def test_reconcile_endpoint_respects_stale_window(client, make_order, admin_headers, verifier):
    make_order()

    response = client.post(
        "/api/admin/reconcile",
        json={"stale_after_minutes": 600},
        headers=admin_headers,
    )

    assert response.json()["total"] == 0
    assert verifier.calls == []


def test_auto_process_endpoint(client, make_order, admin_headers):
    make_order(status="confirmed", payment_status="paid", transaction_status="success")

    response = client.post("/api/admin/auto-process", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["processed"] == 1


def test_subscription_reconcile_endpoint(client, db, make_subscription, admin_headers, verifier):
    subscription = make_subscription()
    verifier.statuses["sub_txn_1"] = TransactionStatus.SUCCESS

    response = client.post("/api/admin/subscriptions/reconcile", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["processed"] == 1
    db.refresh(subscription)
    assert subscription.status == "confirmed"


def test_stuck_orders_and_stats(client, make_order, admin_headers):
    stuck = make_order()
    make_order(status="confirmed", payment_status="paid", transaction_status="success")

    stuck_response = client.get("/api/admin/orders/stuck", headers=admin_headers)
    assert [item["order_number"] for item in stuck_response.json()] == [stuck.order_number]
    assert stuck_response.json()[0]["issue"] == "processing"

    stats = client.get("/api/admin/orders/stats", headers=admin_headers).json()
    assert stats["total_orders"] == 2
    assert stats["pending_payments"] == 1
    assert stats["paid_orders"] == 1
    assert stats["stuck_orders"] == 1
    assert stats["awaiting_fulfillment"] == 1
    assert float(stats["total_revenue"]) == 5000.0


def test_pending_transactions_listing(client, make_order, admin_headers):
    pending = make_order()
    make_order(status="confirmed", payment_status="paid", transaction_status="success")

    response = client.get("/api/admin/transactions/pending", headers=admin_headers)

    assert [item["transaction_id"] for item in response.json()] == [pending.transactions[0].transaction_id]


def test_process_logs_and_audit_log(client, db, make_order, admin_headers):
    order = make_order()
    client.post(f"/api/admin/orders/{order.id}/confirm", json={"notes": "cash"}, headers=admin_headers)
    client.post("/api/admin/auto-process", headers=admin_headers)

    logs = client.get("/api/admin/process-logs", params={"run_type": "auto_process"}, headers=admin_headers)
    assert logs.status_code == status.HTTP_200_OK
    assert [entry["run_type"] for entry in logs.json()] == ["auto_process"]
    assert db.query(AutoProcessLog).count() == 1

    audit = client.get("/api/admin/audit-log", headers=admin_headers).json()
    assert audit[0]["action"] == "confirm_order"
    assert audit[0]["notes"] == "cash"
    assert audit[0]["before_state"]["payment_status"] == "pending"
