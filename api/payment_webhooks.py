"""
pawaPay deposit callback handler
"""
import json

from fastapi import APIRouter, Request, HTTPException, Depends
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from api.dependencies import get_payment_orchestrator
from schemas.payment import DepositWebhookPayload
from services.payment_service import OUTCOME_ERROR, PaymentOrchestrator
from utils.logger_factory import new_logger

log = new_logger("payment_webhooks")

router = APIRouter()


@router.post("/payments/webhook")
async def handle_payment_webhook(
    request: Request,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """
    Reconcile a deposit callback. Once the body parses, the answer is always
    200 so pawaPay does not keep re-delivering; reconciliation problems are
    logged instead.
    """
    body = await request.body()
    try:
        raw = json.loads(body)
        if not isinstance(raw, dict):
            raise ValueError("webhook body must be a JSON object")
        payload = DepositWebhookPayload.model_validate(raw)
    except (ValueError, ValidationError) as e:
        log.warning(f"Rejected malformed webhook: {e}; body={body[:500]!r}")
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    log.info(
        f"Received deposit webhook for {payload.correlation_id} with status {payload.status}",
        extra={
            "deposit_id": payload.correlation_id,
            "webhook_status": payload.status,
            "payload_short": str(raw)[:500],
        }
    )

    try:
        result = orchestrator.handle_webhook(payload, raw)
    except Exception:
        orchestrator.db.rollback()
        log.exception(f"Error reconciling webhook for deposit {payload.correlation_id}")
        try:
            payment = orchestrator.get_payment(payload.correlation_id)
        except SQLAlchemyError:
            orchestrator.db.rollback()
            log.exception(f"Could not load payment for deposit {payload.correlation_id} while logging the error")
            payment = None
        orchestrator.record_webhook(payment, payload, raw, OUTCOME_ERROR)
        return {"status": "ok"}

    log.info(f"Webhook for deposit {payload.correlation_id} processed: {result['outcome']}")
    return {"status": "ok"}
