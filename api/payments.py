"""
Mobile-money deposit endpoints used by the app's payment screen
"""
from fastapi import APIRouter, HTTPException, Depends

from api.dependencies import get_payment_orchestrator
from schemas.payment import (
    DepositRequest,
    DepositResponse,
    DepositStatusResponse,
    CorrespondentsResponse,
    PredictCorrespondentRequest,
    PredictCorrespondentResponse,
)
from services.payment_service import PaymentOrchestrator, PaymentValidationError, PaymentDeliveryError
from utils.jwt_auth import require_roles, ensure_same_user
from utils.logger_factory import new_logger

router = APIRouter()


@router.post("/payments/deposits", response_model=DepositResponse)
def initiate_deposit(
    payload: DepositRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    current_user=Depends(require_roles("USER", "ADMIN")),
):
    log = new_logger("initiate_deposit")
    log.info(f"Deposit requested by {current_user['user_id']} for user {payload.user_id}, plan {payload.plan_id}, "
             f"amount {payload.amount}, extension={payload.is_extension}")
    ensure_same_user(current_user, payload.user_id)
    try:
        return orchestrator.initiate_deposit(
            amount=payload.amount,
            phone_number=payload.phone_number.strip(),
            plan_id=payload.plan_id,
            user_id=payload.user_id,
            correspondent=payload.correspondent,
            description=payload.description,
            is_extension=payload.is_extension,
        )
    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentDeliveryError:
        raise HTTPException(status_code=502, detail="Payment processing failed. Please try again.")


@router.get("/payments/deposits/{deposit_id}", response_model=DepositStatusResponse)
def check_deposit_status(
    deposit_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    current_user=Depends(require_roles("USER", "ADMIN")),
):
    log = new_logger("check_deposit_status")
    payment = orchestrator.get_payment(deposit_id)
    if payment is not None:
        ensure_same_user(current_user, payment.user_id)
    elif current_user["role"] != "ADMIN":
        raise HTTPException(status_code=404, detail="Payment not found")
    log.info(f"Checking status of deposit {deposit_id}")
    try:
        return orchestrator.check_deposit_status(deposit_id)
    except PaymentDeliveryError:
        raise HTTPException(status_code=502, detail="Failed to check payment status")


@router.get("/payments/correspondents", response_model=CorrespondentsResponse)
def list_correspondents(orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)):
    return {"correspondents": orchestrator.list_correspondents()}


@router.post("/payments/correspondents/predict", response_model=PredictCorrespondentResponse)
def predict_correspondent(
    payload: PredictCorrespondentRequest,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    try:
        return orchestrator.predict_correspondent(payload.phone_number.strip())
    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
