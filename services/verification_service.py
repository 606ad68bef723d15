"""
One-time code issuance and validation for phone numbers
"""
import hmac
import logging
import math
import os
import secrets
from datetime import timedelta
from typing import Callable, Dict, Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from models.user import User
from models.verification_code import VerificationCode
from services.messaging_service import CHANNEL_WHATSAPP, SUPPORTED_CHANNELS, MessagingError, TwilioMessagingClient
from utils.datetime_helpers import as_utc, isoformat_utc, utcnow
from utils.logger_factory import new_logger
from utils.phone_numbers import is_valid_cameroon_phone

log = new_logger("verification_service")
verification_retry_logger = new_logger("verification_db_retry")

# Single source of truth for code lifetime; clients derive their countdowns from
# the timestamps returned by send().
OTP_EXPIRY_MINUTES = int(os.getenv("OTP_EXPIRY_MINUTES", "15"))
OTP_RESEND_COOLDOWN_SECONDS = int(os.getenv("OTP_RESEND_COOLDOWN_SECONDS", "300"))

PURPOSE_VERIFICATION = "verification"
PURPOSE_REGISTRATION = "registration"
PURPOSE_PASSWORD_RESET = "password_reset"
SUPPORTED_PURPOSES = (PURPOSE_VERIFICATION, PURPOSE_REGISTRATION, PURPOSE_PASSWORD_RESET)


class VerificationError(Exception):
    """Base class for verification failures."""


class InvalidPhoneError(VerificationError):
    pass


class UnsupportedChannelError(VerificationError):
    pass


class PhoneNotRegisteredError(VerificationError):
    pass


class PhoneAlreadyRegisteredError(VerificationError):
    pass


class ResendCooldownError(VerificationError):
    def __init__(self, next_allowed_send_at, retry_after: int):
        super().__init__(f"A new code can be requested in {retry_after} seconds")
        self.next_allowed_send_at = next_allowed_send_at
        self.retry_after = retry_after


class CodeDeliveryError(VerificationError):
    pass


class InvalidOrExpiredCodeError(VerificationError):
    """Wrong, expired and already-used codes all raise this one error."""


class VerificationEngine:
    """
    Issues codes through a messaging channel and validates them.

    A code is persisted only after the channel accepted it, so a code that was
    never delivered can never validate. Validation consumes the code with one
    conditional UPDATE, which keeps a code single-use under concurrent requests.
    """

    def __init__(
        self,
        db: Session,
        messaging: TwilioMessagingClient,
        expiry_minutes: int = OTP_EXPIRY_MINUTES,
        resend_cooldown_seconds: int = OTP_RESEND_COOLDOWN_SECONDS,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.messaging = messaging
        self.expiry = timedelta(minutes=expiry_minutes)
        self.resend_cooldown = timedelta(seconds=resend_cooldown_seconds)
        self.clock = clock

    @staticmethod
    def generate_code() -> str:
        return str(100000 + secrets.randbelow(900000))

    def latest_code(self, phone: str):
        return (
            self.db.query(VerificationCode)
            .filter(VerificationCode.phone == phone)
            .order_by(VerificationCode.created_at.desc(), VerificationCode.id.desc())
            .first()
        )

    def _check_identity(self, phone: str, purpose: str):
        if purpose == PURPOSE_VERIFICATION:
            return
        exists = self.db.query(User.id).filter(User.phone == phone).first() is not None
        if purpose == PURPOSE_PASSWORD_RESET and not exists:
            log.info(f"Password reset requested for unknown phone {phone}")
            raise PhoneNotRegisteredError("No account found for this phone number")
        if purpose == PURPOSE_REGISTRATION and exists:
            log.info(f"Registration requested for already registered phone {phone}")
            raise PhoneAlreadyRegisteredError("This phone number is already registered")

    def _check_cooldown(self, phone: str, now):
        latest = self.latest_code(phone)
        if latest is None or latest.verified:
            return
        next_allowed = as_utc(latest.next_allowed_send_at)
        if next_allowed > now:
            retry_after = math.ceil((next_allowed - now).total_seconds())
            log.info(f"Resend blocked for {phone}, retry in {retry_after}s")
            raise ResendCooldownError(next_allowed, retry_after)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(verification_retry_logger, logging.WARNING),
        reraise=True,
    )
    def _persist_code(self, verification_code: VerificationCode) -> VerificationCode:
        try:
            self.db.add(verification_code)
            self.db.commit()
            self.db.refresh(verification_code)
        except OperationalError:
            self.db.rollback()
            log.exception("OperationalError while storing verification code, will retry.")
            raise
        return verification_code

    def send(self, phone: str, channel: str = CHANNEL_WHATSAPP, purpose: str = PURPOSE_VERIFICATION) -> Dict[str, Any]:
        if not is_valid_cameroon_phone(phone):
            raise InvalidPhoneError("Phone number must be in international format (+237XXXXXXXXX)")
        if channel not in SUPPORTED_CHANNELS:
            raise UnsupportedChannelError(f"Unsupported channel: {channel}")
        if purpose not in SUPPORTED_PURPOSES:
            raise VerificationError(f"Unsupported purpose: {purpose}")

        self._check_identity(phone, purpose)
        now = self.clock()
        self._check_cooldown(phone, now)

        code = self.generate_code()
        try:
            message_sid = self.messaging.send_code(phone, code, channel)
        except MessagingError as e:
            log.error(f"Code delivery failed for {phone}: {e}")
            raise CodeDeliveryError("Failed to send verification code") from e

        verification_code = self._persist_code(VerificationCode(
            phone=phone,
            code=code,
            channel=channel,
            message_sid=message_sid,
            created_at=now,
            expires_at=now + self.expiry,
            next_allowed_send_at=now + self.resend_cooldown,
            verified=False,
        ))
        log.info(f"Verification code issued [{verification_code.to_dict()}]")
        return {
            "success": True,
            "message_id": message_sid,
            "phone": phone,
            "channel": channel,
            "expires_at": isoformat_utc(verification_code.expires_at),
            "next_allowed_send_at": isoformat_utc(verification_code.next_allowed_send_at),
        }

    def verify(self, phone: str, code: str) -> Dict[str, Any]:
        code = (code or "").strip()
        if not (len(code) == 6 and code.isdigit()):
            raise InvalidOrExpiredCodeError("Invalid or expired code.")

        now = self.clock()
        # Only the newest code sent to the phone counts; earlier sends stay
        # superseded even after it has been used
        current = self.latest_code(phone)
        if (
            current is None
            or current.verified
            or as_utc(current.expires_at) <= now
            or not hmac.compare_digest(current.code, code)
        ):
            log.info(f"Verification failed for {phone}")
            raise InvalidOrExpiredCodeError("Invalid or expired code.")

        updated = (
            self.db.query(VerificationCode)
            .filter(
                VerificationCode.id == current.id,
                VerificationCode.verified.is_(False),
                VerificationCode.expires_at > now,
            )
            .update({"verified": True, "verified_at": now}, synchronize_session=False)
        )
        self.db.commit()
        if updated != 1:
            log.warning(f"Verification code {current.id} for {phone} was consumed concurrently")
            raise InvalidOrExpiredCodeError("Invalid or expired code.")

        log.info(f"Verification code {current.id} verified for {phone}")
        return {"success": True, "phone": phone, "verified_at": isoformat_utc(now)}
