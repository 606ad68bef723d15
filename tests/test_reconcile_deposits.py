from datetime import timedelta
from decimal import Decimal

from models.payment import Payment, PaymentStatus
from models.transaction import Transaction
from scripts.reconcile_deposits import reconcile
from services.payment_service import PaymentOrchestrator
from utils.datetime_helpers import utcnow


def add_payment(db, deposit_id, status, age_minutes):
    created = utcnow() - timedelta(minutes=age_minutes)
    db.add(Payment(
        deposit_id=deposit_id,
        user_id="user-1",
        plan_id="pro",
        amount=Decimal("5000"),
        correspondent="ORANGE_CMR",
        phone_number="+237691234567",
        status=status,
        payment_metadata={},
        created_at=created,
        updated_at=created,
    ))
    db.commit()


def test_reconcile_polls_only_stale_unsettled_payments(db, pawapay):
    add_payment(db, "dep-stale", PaymentStatus.PROCESSING, age_minutes=60)
    add_payment(db, "dep-fresh", PaymentStatus.PROCESSING, age_minutes=1)
    add_payment(db, "dep-done", PaymentStatus.COMPLETED, age_minutes=60)
    add_payment(db, "dep-unknown", PaymentStatus.PENDING, age_minutes=60)
    pawapay.deposits["dep-stale"] = {"depositId": "dep-stale", "status": "COMPLETED"}

    summary = reconcile(db, PaymentOrchestrator(db, pawapay), min_age_minutes=15, limit=10)

    assert summary == {"checked": 2, "settled": 1, "activated": 1, "errors": 1}
    assert db.query(Payment).filter(Payment.deposit_id == "dep-stale").one().status == PaymentStatus.COMPLETED
    assert db.query(Payment).filter(Payment.deposit_id == "dep-unknown").one().status == PaymentStatus.PENDING
    assert db.query(Transaction).count() == 1


def test_reconcile_dry_run_polls_nothing(db, pawapay):
    add_payment(db, "dep-stale", PaymentStatus.PENDING, age_minutes=60)
    summary = reconcile(db, PaymentOrchestrator(db, pawapay), min_age_minutes=15, limit=10, dry_run=True)
    assert summary["checked"] == 0
    assert db.query(Payment).one().status == PaymentStatus.PENDING
