from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index, func
from database import Base
from utils.datetime_helpers import isoformat_utc


class VerificationCode(Base):
    __tablename__ = "verification_codes"
    __table_args__ = (
        Index('idx_verification_codes_phone_created', 'phone', 'created_at'),
    )

    id = Column(Integer, primary_key=True)
    phone = Column(String(16), index=True, nullable=False)
    code = Column(String(6), nullable=False)
    channel = Column(String(16), nullable=False, default='whatsapp')  # 'whatsapp' or 'sms'
    message_sid = Column(String(64), nullable=True)  # provider message id returned on dispatch
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    next_allowed_send_at = Column(DateTime(timezone=True), nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self):
        # The code itself is never logged
        return {
            "id": self.id,
            "phone": self.phone,
            "channel": self.channel,
            "message_sid": self.message_sid,
            "created_at": isoformat_utc(self.created_at),
            "expires_at": isoformat_utc(self.expires_at),
            "next_allowed_send_at": isoformat_utc(self.next_allowed_send_at),
            "verified": self.verified,
        }
