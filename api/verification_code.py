from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_verification_engine
from schemas.verification_code import SendCodeRequest, SendCodeResponse, VerificationRequest, VerificationResponse
from services.verification_service import (
    VerificationEngine,
    VerificationError,
    InvalidPhoneError,
    UnsupportedChannelError,
    PhoneNotRegisteredError,
    PhoneAlreadyRegisteredError,
    ResendCooldownError,
    CodeDeliveryError,
    InvalidOrExpiredCodeError,
)
from utils.datetime_helpers import isoformat_utc
from utils.logger_factory import new_logger

router = APIRouter()


@router.post("/verification/send", response_model=SendCodeResponse)
def send_verification_code(payload: SendCodeRequest, engine: VerificationEngine = Depends(get_verification_engine)):
    log = new_logger("send_verification_code")
    phone = payload.phone.strip()
    log.info(f"Sending {payload.channel} verification code to {phone} for {payload.purpose}")
    try:
        result = engine.send(phone, channel=payload.channel, purpose=payload.purpose)
    except ResendCooldownError as e:
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(e.retry_after)},
            content={
                "detail": str(e),
                "retry_after": e.retry_after,
                "next_allowed_send_at": isoformat_utc(e.next_allowed_send_at),
            },
        )
    except PhoneNotRegisteredError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PhoneAlreadyRegisteredError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CodeDeliveryError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except (InvalidPhoneError, UnsupportedChannelError, VerificationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SendCodeResponse(message="Verification code sent.", **result)


@router.post("/verification/verify", response_model=VerificationResponse)
def verify_code(payload: VerificationRequest, engine: VerificationEngine = Depends(get_verification_engine)):
    log = new_logger("verify_code")
    phone = payload.phone.strip()
    log.info(f"Verifying code for {phone}")
    try:
        return engine.verify(phone, payload.code)
    except InvalidOrExpiredCodeError:
        raise HTTPException(status_code=400, detail="Invalid or expired code.")
