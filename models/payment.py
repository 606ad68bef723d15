import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Numeric, false, func
from database import Base, JSONType


class PaymentStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL = frozenset({COMPLETED, FAILED})

    # target status -> statuses it may be reached from
    ALLOWED_SOURCES = {
        PROCESSING: (PENDING,),
        COMPLETED: (PENDING, PROCESSING),
        FAILED: (PENDING, PROCESSING),
    }

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return current in cls.ALLOWED_SOURCES.get(target, ())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deposit_id = Column(String(36), unique=True, index=True, nullable=False)  # sent to pawaPay, never reassigned
    user_id = Column(String(36), index=True, nullable=False)
    plan_id = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="XAF", server_default="XAF")
    correspondent = Column(String(32), nullable=False)
    payment_method = Column(String(32), nullable=True)
    phone_number = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=PaymentStatus.PENDING, server_default=PaymentStatus.PENDING, index=True)
    is_extension = Column(Boolean, nullable=False, default=False, server_default=false())
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)
    payment_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), server_default=func.now(), onupdate=func.now())

    def is_final_status(self) -> bool:
        return PaymentStatus.is_terminal(self.status)

    def to_dict(self):
        return {
            "id": self.id,
            "deposit_id": self.deposit_id,
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "correspondent": self.correspondent,
            "status": self.status,
            "is_extension": self.is_extension,
        }
