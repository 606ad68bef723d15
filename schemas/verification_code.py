from pydantic import BaseModel, field_validator
from typing import Optional


class SendCodeRequest(BaseModel):
    phone: str
    channel: str = "whatsapp"
    purpose: str = "verification"  # verification, registration or password_reset


class SendCodeResponse(BaseModel):
    success: bool
    message_id: str
    phone: str
    channel: str
    expires_at: str
    next_allowed_send_at: str
    message: Optional[str] = None


class VerificationRequest(BaseModel):
    phone: str
    code: str

    @field_validator('code', mode='before')
    @classmethod
    def validate_code(cls, v):
        # Numeric codes from clients go through the same check as strings
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class VerificationResponse(BaseModel):
    success: bool
    phone: str
    verified_at: Optional[str]
