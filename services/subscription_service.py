"""
Subscription side effects of a completed payment
"""
import os
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from models.payment import Payment
from models.transaction import Transaction
from models.user import User
from utils.datetime_helpers import add_months, as_utc, utcnow
from utils.logger_factory import new_logger

log = new_logger("subscription_service")

# Expense category the subscription fee is booked under in the user's ledger
SUBSCRIPTION_CATEGORY_ID = os.getenv("SUBSCRIPTION_CATEGORY_ID", "607d224f-f9ee-44c1-9edf-118d73142ee2")
SUBSCRIPTION_LEVEL_PRO = "pro"
SUBSCRIPTION_PERIOD_MONTHS = 1


class SubscriptionService:
    def __init__(self, db: Session, clock: Callable = utcnow):
        self.db = db
        self.clock = clock

    def book_expense(self, payment: Payment) -> Optional[Transaction]:
        """Record the subscription fee as an expense, once per payment."""
        existing = self.db.query(Transaction).filter(Transaction.payment_id == payment.id).first()
        if existing:
            log.info(f"Expense for payment {payment.id} already booked as {existing.id}")
            return None
        description = f"Abonnement {payment.plan_id}"
        if payment.is_extension:
            description += " (Extension)"
        transaction = Transaction(
            user_id=payment.user_id,
            amount=payment.amount,
            is_expense=True,
            category_id=SUBSCRIPTION_CATEGORY_ID,
            description=description,
            transaction_date=self.clock(),
            payment_id=payment.id,
        )
        self.db.add(transaction)
        return transaction

    def compute_period(self, user: Optional[User], is_extension: bool):
        start = self.clock()
        if is_extension and user is not None and user.subscription_end_date:
            # Extending a subscription that already lapsed starts again from today
            base = max(user.subscription_end_date, start.date())
            end = datetime.combine(add_months(base, SUBSCRIPTION_PERIOD_MONTHS), start.timetz())
        else:
            end = add_months(start, SUBSCRIPTION_PERIOD_MONTHS)
        return start, end

    def activate(self, payment: Payment) -> Dict[str, str]:
        """
        Upgrade the paying user to pro and stamp the subscription period on the
        payment. The caller commits.
        """
        self.book_expense(payment)

        user = self.db.query(User).filter(User.id == payment.user_id).first()
        start, end = self.compute_period(user, payment.is_extension)
        if user is None:
            log.warning(f"No user {payment.user_id} for payment {payment.id}; subscription dates recorded on payment only")
        else:
            user.subscription_level = SUBSCRIPTION_LEVEL_PRO
            user.subscription_end_date = end.date()
            user.updated_at = start
            kind = "extended" if payment.is_extension else "activated"
            log.info(f"Subscription {kind} [{user.to_dict()}]")

        payment.subscription_start_date = start
        payment.subscription_end_date = end
        return {
            "subscription_start_date": as_utc(start).isoformat(),
            "subscription_end_date": as_utc(end).isoformat(),
        }
