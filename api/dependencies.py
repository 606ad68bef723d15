"""
FastAPI providers for the external clients and the services built on them.
Tests swap the client providers through app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from services.messaging_service import TwilioMessagingClient, create_messaging_client
from services.pawapay_service import PawaPayClient, create_pawapay_client
from services.payment_service import PaymentOrchestrator
from services.verification_service import VerificationEngine


@lru_cache(maxsize=1)
def get_messaging_client() -> TwilioMessagingClient:
    return create_messaging_client()


@lru_cache(maxsize=1)
def get_pawapay_client() -> PawaPayClient:
    return create_pawapay_client()


def get_verification_engine(
    db: Session = Depends(get_db),
    messaging: TwilioMessagingClient = Depends(get_messaging_client),
) -> VerificationEngine:
    return VerificationEngine(db, messaging)


def get_payment_orchestrator(
    db: Session = Depends(get_db),
    processor: PawaPayClient = Depends(get_pawapay_client),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(db, processor)
