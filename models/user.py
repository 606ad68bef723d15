import uuid
from sqlalchemy import Column, String, DateTime, Date
from sqlalchemy.sql import func
from database import Base


class User(Base):
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(16), unique=True, index=True, nullable=False)  # E.164, e.g. +237691234567
    full_name = Column(String, nullable=True)
    subscription_level = Column(String(16), nullable=False, default='free', server_default='free')  # 'free' or 'pro'
    subscription_end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now(), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'phone': self.phone,
            'full_name': self.full_name,
            'subscription_level': self.subscription_level,
            'subscription_end_date': self.subscription_end_date.isoformat() if self.subscription_end_date else None,
        }
