from sqlalchemy import Column, Integer, String, DateTime, func
from database import Base, JSONType


class PaymentWebhook(Base):
    """One row per structurally valid webhook delivery, whatever its outcome."""
    __tablename__ = "payment_webhooks"

    id = Column(Integer, primary_key=True)
    payment_id = Column(String(36), index=True, nullable=True)  # null when the deposit is unknown
    deposit_id = Column(String(64), index=True, nullable=False)
    status = Column(String(32), nullable=False)
    outcome = Column(String(32), nullable=False)  # applied, duplicate, ignored, unknown_deposit, error
    payload = Column(JSONType, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), server_default=func.now())
