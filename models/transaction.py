import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Numeric, func
from database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    is_expense = Column(Boolean, nullable=False, default=True)
    category_id = Column(String(36), nullable=True)
    description = Column(String, nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Set for ledger lines booked from a subscription payment; unique so a payment is booked once
    payment_id = Column(String(36), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), server_default=func.now())
