import os
import logging

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from database import get_db
from utils.logger_factory import new_logger

health_retry_logger = new_logger("health_check_retry")

router = APIRouter()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=before_sleep_log(health_retry_logger, logging.WARNING),
    reraise=True,
)
def ping_database(db: Session) -> bool:
    row = db.execute(text("SELECT 1 as health_check")).fetchone()
    return bool(row and row[0] == 1)


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Performs a benign database query and reports which external providers are
    configured.

    Returns:
        200: Service is healthy and database is accessible
        500: Database is unreachable or answered unexpectedly
    """
    log = new_logger("health_check")
    providers = {
        "pawapay": bool(os.getenv("PAWAPAY_API_TOKEN")),
        "twilio": bool(os.getenv("TWILIO_ACCOUNT_SID") and os.getenv("TWILIO_AUTH_TOKEN")),
    }
    try:
        database_ok = ping_database(db)
    except OperationalError as e:
        log.error(f"Health check failed, database unreachable: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail={"status": "unhealthy", "database": "disconnected", "providers": providers},
        )

    if not database_ok:
        log.error("Health check failed - unexpected database response")
        raise HTTPException(
            status_code=500,
            detail={"status": "unhealthy", "database": "error", "providers": providers},
        )

    return {"status": "healthy", "database": "connected", "providers": providers}
