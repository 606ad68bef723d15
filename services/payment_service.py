"""
Mobile-money deposit orchestration: initiation, webhook reconciliation and
status polling against pawaPay.

Payment status only moves forward:

    pending --ACCEPTED--> processing --COMPLETED--> completed
       |                      |
       +--REJECTED/error--> failed <--FAILED--+

A webhook or poll result may also overtake the synchronous response and move
a pending payment straight to completed/failed. Every transition is a
conditional UPDATE on the current status, so a duplicate or concurrent
delivery can never apply twice and never reopens a terminal payment.
"""
import uuid
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.payment import Payment, PaymentStatus
from models.payment_webhook import PaymentWebhook
from schemas.payment import DepositWebhookPayload
from services.pawapay_service import PawaPayClient, PawaPayError
from services.subscription_service import SubscriptionService
from utils.datetime_helpers import isoformat_utc, utcnow
from utils.logger_factory import new_logger
from utils.phone_numbers import (
    CORRESPONDENTS,
    PAYMENT_METHODS,
    is_ambiguous_prefix,
    is_valid_cameroon_phone,
    resolve_correspondent,
    sanitize_statement_description,
    to_msisdn,
)

log = new_logger("payment_service")

DEPOSIT_CURRENCY = "XAF"
COUNTRY = "CMR"


class ProcessorStatus(str, Enum):
    ACCEPTED = "ACCEPTED"
    SUBMITTED = "SUBMITTED"
    ENQUEUED = "ENQUEUED"
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    DUPLICATE_IGNORED = "DUPLICATE_IGNORED"

    @classmethod
    def parse(cls, value) -> Optional["ProcessorStatus"]:
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


# Every processor status maps to the local status it drives, or None when it
# carries no state change.
STATUS_TRANSITIONS = {
    ProcessorStatus.ACCEPTED: PaymentStatus.PROCESSING,
    ProcessorStatus.SUBMITTED: PaymentStatus.PROCESSING,
    ProcessorStatus.ENQUEUED: PaymentStatus.PROCESSING,
    ProcessorStatus.PENDING: PaymentStatus.PROCESSING,
    ProcessorStatus.PROCESSING: PaymentStatus.PROCESSING,
    ProcessorStatus.COMPLETED: PaymentStatus.COMPLETED,
    ProcessorStatus.FAILED: PaymentStatus.FAILED,
    ProcessorStatus.REJECTED: PaymentStatus.FAILED,
    ProcessorStatus.DUPLICATE_IGNORED: None,
}

OUTCOME_APPLIED = "applied"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"
OUTCOME_UNKNOWN_DEPOSIT = "unknown_deposit"
OUTCOME_ERROR = "error"


class PaymentError(Exception):
    pass


class PaymentValidationError(PaymentError):
    pass


class PaymentDeliveryError(PaymentError):
    """pawaPay could not be reached or refused the request."""


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(Decimal(1))) if amount == amount.to_integral_value() else str(amount.normalize())


def build_statement_description(plan_id: str, description: Optional[str] = None, is_extension: bool = False) -> str:
    fallback = f"DULU {plan_id}"
    if is_extension:
        return sanitize_statement_description(f"DULU {plan_id} Extension", fallback)
    return sanitize_statement_description(description or fallback, fallback)


class PaymentOrchestrator:
    def __init__(
        self,
        db: Session,
        processor: PawaPayClient,
        subscriptions: Optional[SubscriptionService] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.processor = processor
        self.clock = clock
        self.subscriptions = subscriptions or SubscriptionService(db, clock=clock)

    def get_payment(self, deposit_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.deposit_id == deposit_id).first()

    def _validate_deposit(self, amount, phone_number, plan_id, user_id, correspondent):
        missing = [name for name, value in (
            ("amount", amount), ("phoneNumber", phone_number), ("planId", plan_id), ("userId", user_id)
        ) if value in (None, "")]
        if missing:
            raise PaymentValidationError(f"Missing required fields: {', '.join(missing)}")
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise PaymentValidationError("Amount must be a number")
        if not amount.is_finite() or amount <= 0:
            raise PaymentValidationError("Amount must be greater than zero")
        if amount != amount.to_integral_value():
            raise PaymentValidationError("XAF amounts must be whole numbers")
        if not is_valid_cameroon_phone(phone_number):
            raise PaymentValidationError("Invalid phone number format. Must be +237XXXXXXXXX")
        if correspondent and correspondent not in CORRESPONDENTS:
            raise PaymentValidationError(f"Unknown correspondent: {correspondent}")
        return amount

    def initiate_deposit(
        self,
        amount,
        phone_number: str,
        plan_id: str,
        user_id: str,
        correspondent: Optional[str] = None,
        description: Optional[str] = None,
        is_extension: bool = False,
    ) -> Dict[str, Any]:
        amount = self._validate_deposit(amount, phone_number, plan_id, user_id, correspondent)
        inferred = not correspondent
        if inferred:
            correspondent = resolve_correspondent(phone_number)
            log.info(f"Correspondent {correspondent} inferred from {phone_number}"
                     f"{' (ambiguous prefix)' if is_ambiguous_prefix(phone_number) else ''}")

        deposit_id = str(uuid.uuid4())
        now = self.clock()
        deposit_request = {
            "depositId": deposit_id,
            "amount": format_amount(amount),
            "currency": DEPOSIT_CURRENCY,
            "correspondent": correspondent,
            "payer": {"type": "MSISDN", "address": {"value": to_msisdn(phone_number)}},
            "customerTimestamp": isoformat_utc(now),
            "statementDescription": build_statement_description(plan_id, description, is_extension),
        }

        # The pending row is committed before pawaPay is called so every attempt leaves a record
        payment = Payment(
            deposit_id=deposit_id,
            user_id=user_id,
            plan_id=plan_id,
            amount=amount,
            currency=DEPOSIT_CURRENCY,
            correspondent=correspondent,
            payment_method=PAYMENT_METHODS[correspondent],
            phone_number=phone_number,
            status=PaymentStatus.PENDING,
            is_extension=is_extension,
            payment_metadata={
                "phone_number": phone_number,
                "correspondent": correspondent,
                "correspondent_inferred": inferred,
                "description": description or f"DULU {plan_id}",
                "is_extension": is_extension,
                "pawapay_request": deposit_request,
            },
            created_at=now,
            updated_at=now,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        log.info(f"Payment created [{payment.to_dict()}]")

        try:
            response = self.processor.initiate_deposit(deposit_request)
        except PawaPayError as e:
            self._transition(payment, PaymentStatus.FAILED, {
                "error": e.body or str(e),
                "error_status_code": e.status_code,
                "failed_at": isoformat_utc(self.clock()),
            })
            log.error(f"Deposit {deposit_id} failed at initiation: {e}")
            raise PaymentDeliveryError("Payment processing failed") from e

        processor_status = ProcessorStatus.parse(response.get("status"))
        details = {"pawapay_response": response, "updated_at": isoformat_utc(self.clock())}
        if processor_status is None:
            log.warning(f"Unrecognized initiation status {response.get('status')!r} for deposit {deposit_id}")
            self._merge_metadata(payment, details)
        else:
            self._apply(payment, processor_status, details, source="initiation")

        return {
            "success": True,
            "payment_id": payment.id,
            "deposit_id": response.get("depositId") or deposit_id,
            "status": response.get("status"),
            "payment_status": payment.status,
            "correspondent": correspondent,
            "message": response.get("reason") or "Deposit initiated successfully",
            "created": response.get("created"),
            "is_extension": is_extension,
        }

    def _merge_metadata(self, payment: Payment, details: Dict[str, Any]):
        payment.payment_metadata = {**(payment.payment_metadata or {}), **details}
        self.db.commit()

    def _transition(self, payment: Payment, target: str, details: Dict[str, Any]) -> bool:
        """Move `payment` to `target` only if its stored status still allows it."""
        metadata = {**(payment.payment_metadata or {}), **details}
        updated = (
            self.db.query(Payment)
            .filter(
                Payment.id == payment.id,
                Payment.status.in_(PaymentStatus.ALLOWED_SOURCES[target]),
            )
            .update(
                {Payment.status: target, Payment.payment_metadata: metadata, Payment.updated_at: self.clock()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        self.db.refresh(payment)
        if updated:
            log.info(f"Payment {payment.id} (deposit {payment.deposit_id}) -> {target}")
        return updated == 1

    def _apply(self, payment: Payment, processor_status: ProcessorStatus, details: Dict[str, Any], source: str):
        """
        Returns (outcome, subscription_updated). Activation runs only for the
        call that actually moved the payment to completed.
        """
        target = STATUS_TRANSITIONS[processor_status]
        if target is None:
            log.info(f"{source}: {processor_status.value} for deposit {payment.deposit_id} carries no state change")
            return OUTCOME_IGNORED, False
        if payment.status == target or not PaymentStatus.can_transition(payment.status, target):
            state = "final" if payment.is_final_status() else "current"
            log.info(f"{source}: deposit {payment.deposit_id} already {payment.status} ({state}), "
                     f"{processor_status.value} not applied")
            return OUTCOME_DUPLICATE, False
        if not self._transition(payment, target, details):
            log.info(f"{source}: deposit {payment.deposit_id} was updated concurrently, now {payment.status}")
            return OUTCOME_DUPLICATE, False

        if target == PaymentStatus.COMPLETED:
            return OUTCOME_APPLIED, self._activate_subscription(payment)
        if target == PaymentStatus.FAILED:
            reason = details.get("rejection_reason") or (details.get("pawapay_response") or {}).get("reason")
            log.warning(f"Payment failed for user {payment.user_id}, plan {payment.plan_id}, "
                        f"deposit {payment.deposit_id}, reason={reason}")
        return OUTCOME_APPLIED, False

    def _activate_subscription(self, payment: Payment) -> bool:
        try:
            self.subscriptions.activate(payment)
            self.db.commit()
        except SQLAlchemyError:
            # The payment stays completed; activation can be replayed by support
            self.db.rollback()
            log.exception(f"Subscription activation failed for payment {payment.id}")
            return False
        return True

    def record_webhook(self, payment: Optional[Payment], payload: DepositWebhookPayload, raw: Dict[str, Any], outcome: str):
        try:
            self.db.add(PaymentWebhook(
                payment_id=payment.id if payment else None,
                deposit_id=payload.correlation_id,
                status=payload.status,
                outcome=outcome,
                payload=raw,
                processed_at=self.clock(),
            ))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            log.exception(f"Failed to log webhook for deposit {payload.correlation_id} (non-critical)")

    def handle_webhook(self, payload: DepositWebhookPayload, raw: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        raw = raw if raw is not None else payload.model_dump(by_alias=True, exclude_none=True)
        deposit_id = payload.correlation_id
        payment = self.get_payment(deposit_id)
        if payment is None:
            log.warning(f"Webhook for unknown deposit {deposit_id} with status {payload.status}")
            self.record_webhook(None, payload, raw, OUTCOME_UNKNOWN_DEPOSIT)
            return {"outcome": OUTCOME_UNKNOWN_DEPOSIT, "payment_id": None, "status": None,
                    "user_subscription_updated": False}

        processor_status = ProcessorStatus.parse(payload.status)
        if processor_status is None:
            log.warning(f"Ignoring webhook with unrecognized status {payload.status!r} for deposit {deposit_id}")
            outcome, subscription_updated = OUTCOME_IGNORED, False
        else:
            details = {
                "webhook_payload": raw,
                "deposited_amount": payload.deposited_amount,
                "correspondent_ids": payload.correspondent_ids,
                "rejection_reason": payload.rejection_reason,
                "webhook_received_at": isoformat_utc(self.clock()),
            }
            outcome, subscription_updated = self._apply(payment, processor_status, details, source="webhook")

        self.record_webhook(payment, payload, raw, outcome)
        return {"outcome": outcome, "payment_id": payment.id, "status": payment.status,
                "user_subscription_updated": subscription_updated}

    def check_deposit_status(self, deposit_id: str) -> Dict[str, Any]:
        payment = self.get_payment(deposit_id)
        try:
            data = self.processor.get_deposit(deposit_id)
        except PawaPayError as e:
            log.error(f"Status check failed for deposit {deposit_id}: {e}")
            raise PaymentDeliveryError("Status check failed") from e

        subscription_updated = False
        processor_status = ProcessorStatus.parse(data.get("status"))
        if payment is not None and processor_status is not None:
            _, subscription_updated = self._apply(payment, processor_status, {
                "latest_pawapay_status": data,
                "rejection_reason": data.get("rejectionReason"),
                "status_updated_at": isoformat_utc(self.clock()),
            }, source="poll")
        elif payment is None:
            log.warning(f"Status checked for deposit {deposit_id} with no local payment record")

        rejection_reason = data.get("rejectionReason")
        deposited_amount = data.get("depositedAmount")
        return {
            "success": True,
            "deposit_id": data.get("depositId") or deposit_id,
            "status": data.get("status") or ProcessorStatus.ACCEPTED.value,
            "message": data.get("reason")
                       or (rejection_reason or {}).get("rejectionMessage")
                       or "Status retrieved successfully",
            "deposited_amount": str(deposited_amount) if deposited_amount is not None else None,
            "correspondent_ids": data.get("correspondentIds"),
            "responded_by_payer": data.get("respondedByPayer"),
            "created": data.get("created"),
            "rejection_reason": rejection_reason,
            "payment_record": {
                "id": payment.id,
                "status": payment.status,
                "plan_id": payment.plan_id,
                "amount": float(payment.amount),
                "is_extension": payment.is_extension,
            } if payment is not None else None,
            "user_subscription_updated": subscription_updated,
        }

    def list_correspondents(self):
        configured = [
            c for c in self.processor.get_active_configuration()
            if c.get("correspondent") in CORRESPONDENTS
        ]
        if configured:
            return [{
                "correspondent": c["correspondent"],
                "name": c.get("name") or CORRESPONDENTS[c["correspondent"]],
                "country": c.get("country", COUNTRY),
                "currency": c.get("currency", DEPOSIT_CURRENCY),
            } for c in configured]
        return [{"correspondent": code, "name": name, "country": COUNTRY, "currency": DEPOSIT_CURRENCY}
                for code, name in CORRESPONDENTS.items()]

    def predict_correspondent(self, phone_number: str) -> Dict[str, Any]:
        if not is_valid_cameroon_phone(phone_number):
            raise PaymentValidationError("Invalid phone number format. Must be +237XXXXXXXXX")
        predicted = self.processor.predict_correspondent(to_msisdn(phone_number))
        if predicted in CORRESPONDENTS:
            return {"phone_number": phone_number, "correspondent": predicted, "source": "pawapay", "ambiguous": False}
        return {
            "phone_number": phone_number,
            "correspondent": resolve_correspondent(phone_number),
            "source": "prefix",
            "ambiguous": is_ambiguous_prefix(phone_number),
        }
