import asyncio
from datetime import datetime, timezone

from conftest import FakeVerifier, unreachable

from app.models import AutoProcessLog, VendorSubscription
from app.models.status import TransactionStatus
from app.services.subscriptions import reconcile_subscriptions, subscription_expiry


def test_monthly_expiry_is_one_calendar_month():
    start = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)
    assert subscription_expiry(start, "monthly") == datetime(2026, 4, 15, 10, 0, tzinfo=timezone.utc)


def test_monthly_expiry_clamps_to_end_of_short_month():
    start = datetime(2026, 1, 31, tzinfo=timezone.utc)
    assert subscription_expiry(start, "monthly") == datetime(2026, 2, 28, tzinfo=timezone.utc)


def test_yearly_expiry_handles_leap_day():
    start = datetime(2028, 2, 29, tzinfo=timezone.utc)
    assert subscription_expiry(start, "yearly") == datetime(2029, 2, 28, tzinfo=timezone.utc)


def test_december_rolls_into_next_year():
    start = datetime(2026, 12, 5, tzinfo=timezone.utc)
    assert subscription_expiry(start, "monthly") == datetime(2027, 1, 5, tzinfo=timezone.utc)


def test_gateway_success_activates_subscription_and_vendor(db, make_subscription, vendor):
    subscription = make_subscription()
    now = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
    verifier = FakeVerifier(statuses={"sub_txn_1": TransactionStatus.SUCCESS})

    result = asyncio.run(reconcile_subscriptions(db, {"moneroo": verifier}, clock=lambda: now))

    db.refresh(subscription)
    db.refresh(vendor)
    assert result.processed == 1
    assert subscription.status == "confirmed"
    assert subscription.approval_source == "gateway"
    assert subscription.approved_by_id is None
    assert subscription.gateway_payload["data"]["id"] == "sub_txn_1"
    assert vendor.subscription_status == "active"
    assert vendor.subscription_plan == "pro"

    log = db.query(AutoProcessLog).one()
    assert log.run_type == "subscription_reconciliation"


def test_gateway_failure_rejects_subscription(db, make_subscription, vendor):
    subscription = make_subscription()
    verifier = FakeVerifier(statuses={"sub_txn_1": TransactionStatus.FAILED})

    result = asyncio.run(reconcile_subscriptions(db, {"moneroo": verifier}))

    db.refresh(subscription)
    db.refresh(vendor)
    assert subscription.status == "rejected"
    assert vendor.subscription_status == "inactive"
    assert result.failed == 1
    assert result.errors[0].error_kind == "GatewayReportedFailure"


def test_pending_and_unreachable_subscriptions_stay_pending(db, make_subscription):
    waiting = make_subscription(gateway_transaction_id="sub_waiting")
    broken = make_subscription(gateway_transaction_id="sub_broken")
    verifier = FakeVerifier(errors={"sub_broken": unreachable("sub_broken")})

    result = asyncio.run(reconcile_subscriptions(db, {"moneroo": verifier}, manual=True))

    db.refresh(waiting)
    db.refresh(broken)
    assert waiting.status == "pending"
    assert broken.status == "pending"
    assert result.unresolved == 2
    assert [entry.error_kind for entry in result.errors] == ["GatewayUnreachable"]
    assert db.query(AutoProcessLog).one().manual is True


def test_subscriptions_without_gateway_id_are_skipped(db, make_subscription):
    make_subscription(gateway_transaction_id=None)
    verifier = FakeVerifier()

    result = asyncio.run(reconcile_subscriptions(db, {"moneroo": verifier}))

    assert result.total == 0
    assert verifier.calls == []


class RejectingVerifier(FakeVerifier):
    """Reports failure after the subscription was already rejected elsewhere."""

    def __init__(self, db, subscription_id):
        super().__init__(default=TransactionStatus.FAILED)
        self.db = db
        self.subscription_id = subscription_id

    async def verify(self, transaction_id):
        self.db.query(VendorSubscription).filter(VendorSubscription.id == self.subscription_id).update(
            {"status": "rejected"}, synchronize_session=False
        )
        self.db.commit()
        return await super().verify(transaction_id)


def test_subscription_rejected_during_verification_is_skipped(db, make_subscription):
    subscription = make_subscription()

    result = asyncio.run(reconcile_subscriptions(db, {"moneroo": RejectingVerifier(db, subscription.id)}))

    db.refresh(subscription)
    assert subscription.status == "rejected"
    assert subscription.gateway_payload is None
    assert result.skipped == 1
    assert result.failed == 0
    assert result.errors == []
