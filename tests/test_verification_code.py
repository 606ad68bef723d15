from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeMessagingClient, TestingSessionLocal
from models.verification_code import VerificationCode
from services.verification_service import (
    InvalidOrExpiredCodeError,
    ResendCooldownError,
    VerificationEngine,
)

PHONE = "+237691234567"
T0 = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def engine(db, clock):
    return VerificationEngine(db, FakeMessagingClient(), expiry_minutes=15, resend_cooldown_seconds=300, clock=clock)


def test_send_code_persists_one_code(client, db, messaging):
    response = client.post("/api/verification/send", json={"phone": PHONE})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["channel"] == "whatsapp"
    assert data["message_id"].startswith("SM")
    assert "code" not in data

    rows = db.query(VerificationCode).filter(VerificationCode.phone == PHONE).all()
    assert len(rows) == 1
    assert rows[0].code == messaging.last_code
    assert rows[0].message_sid == data["message_id"]
    assert messaging.sent[0]["to"] == PHONE


def test_send_code_invalid_phone(client, messaging):
    response = client.post("/api/verification/send", json={"phone": "691234567"})
    assert response.status_code == 400
    assert messaging.sent == []


def test_send_code_unsupported_channel(client):
    response = client.post("/api/verification/send", json={"phone": PHONE, "channel": "email"})
    assert response.status_code == 400


def test_delivery_failure_persists_nothing(client, db, messaging):
    messaging.fail = True
    response = client.post("/api/verification/send", json={"phone": PHONE})
    assert response.status_code == 502
    assert db.query(VerificationCode).count() == 0


def test_resend_within_cooldown_is_rejected(client, messaging):
    assert client.post("/api/verification/send", json={"phone": PHONE}).status_code == 200
    response = client.post("/api/verification/send", json={"phone": PHONE})
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0
    assert response.json()["retry_after"] > 0
    assert len(messaging.sent) == 1


def test_password_reset_requires_registered_phone(client, messaging):
    response = client.post("/api/verification/send", json={"phone": PHONE, "purpose": "password_reset"})
    assert response.status_code == 404
    assert messaging.sent == []


def test_password_reset_for_registered_phone(client, user):
    response = client.post("/api/verification/send", json={"phone": user.phone, "purpose": "password_reset"})
    assert response.status_code == 200


def test_registration_rejects_registered_phone(client, user):
    response = client.post("/api/verification/send", json={"phone": user.phone, "purpose": "registration"})
    assert response.status_code == 409


def test_verify_wrong_then_right_code(client, messaging):
    client.post("/api/verification/send", json={"phone": PHONE})
    code = messaging.last_code
    wrong = "000000" if code != "000000" else "111111"

    response = client.post("/api/verification/verify", json={"phone": PHONE, "code": wrong})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired code."

    response = client.post("/api/verification/verify", json={"phone": PHONE, "code": code})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["verified_at"]


def test_code_is_single_use(client, messaging):
    client.post("/api/verification/send", json={"phone": PHONE})
    code = messaging.last_code
    assert client.post("/api/verification/verify", json={"phone": PHONE, "code": code}).status_code == 200
    response = client.post("/api/verification/verify", json={"phone": PHONE, "code": code})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired code."


def test_malformed_code_gets_same_error(client):
    response = client.post("/api/verification/verify", json={"phone": PHONE, "code": "12ab"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired code."


def test_expired_code_is_rejected(engine, clock):
    result = engine.send(PHONE)
    assert result["expires_at"] == (T0 + timedelta(minutes=15)).isoformat()
    code = engine.messaging.last_code

    clock.advance(minutes=15, seconds=1)
    with pytest.raises(InvalidOrExpiredCodeError):
        engine.verify(PHONE, code)


def test_code_valid_until_expiry(engine, clock):
    engine.send(PHONE)
    clock.advance(minutes=14, seconds=59)
    assert engine.verify(PHONE, engine.messaging.last_code)["success"] is True


def test_cooldown_reports_remaining_seconds(engine, clock):
    result = engine.send(PHONE)
    assert result["next_allowed_send_at"] == (T0 + timedelta(seconds=300)).isoformat()

    clock.advance(seconds=60)
    with pytest.raises(ResendCooldownError) as exc_info:
        engine.send(PHONE)
    assert exc_info.value.retry_after == 240

    clock.advance(seconds=241)
    engine.send(PHONE)
    assert len(engine.messaging.sent) == 2


def test_new_code_supersedes_previous(engine, clock):
    engine.send(PHONE)
    first = engine.messaging.last_code
    clock.advance(seconds=301)
    engine.send(PHONE)
    second = engine.messaging.last_code

    if first != second:
        with pytest.raises(InvalidOrExpiredCodeError):
            engine.verify(PHONE, first)
    assert engine.verify(PHONE, second)["success"] is True


def test_resend_allowed_right_after_successful_verification(engine, clock):
    engine.send(PHONE)
    engine.verify(PHONE, engine.messaging.last_code)
    clock.advance(seconds=5)
    engine.send(PHONE)
    assert len(engine.messaging.sent) == 2


def test_generated_codes_are_six_digits():
    for _ in range(50):
        code = VerificationEngine.generate_code()
        assert len(code) == 6 and code.isdigit()


def test_superseded_code_stays_invalid_after_newer_code_is_used(engine, clock):
    engine.send(PHONE)
    first = engine.messaging.last_code
    clock.advance(seconds=301)
    engine.send(PHONE)
    second = engine.messaging.last_code

    assert engine.verify(PHONE, second)["success"] is True
    with pytest.raises(InvalidOrExpiredCodeError):
        engine.verify(PHONE, first)


class RacingVerificationEngine(VerificationEngine):
    """Another request consumes the code between the lookup and the update."""

    consumed_at = datetime(2026, 10, 17, 9, 1, tzinfo=timezone.utc)

    def latest_code(self, phone):
        current = super().latest_code(phone)
        other = TestingSessionLocal()
        try:
            other.query(VerificationCode).filter(VerificationCode.id == current.id).update(
                {"verified": True, "verified_at": self.consumed_at}, synchronize_session=False
            )
            other.commit()
        finally:
            other.close()
        return current


def test_concurrent_verify_consumes_code_once(db, engine, clock):
    engine.send(PHONE)
    code = engine.messaging.last_code
    clock.advance(seconds=90)

    racing = RacingVerificationEngine(db, engine.messaging, clock=clock)
    with pytest.raises(InvalidOrExpiredCodeError):
        racing.verify(PHONE, code)

    db.expire_all()
    row = db.query(VerificationCode).filter(VerificationCode.phone == PHONE).one()
    assert row.verified is True
    assert row.verified_at.replace(tzinfo=None) == RacingVerificationEngine.consumed_at.replace(tzinfo=None)


def test_numeric_code_is_accepted(client, messaging):
    client.post("/api/verification/send", json={"phone": PHONE})
    response = client.post("/api/verification/verify", json={"phone": PHONE, "code": int(messaging.last_code)})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_short_numeric_code_gets_opaque_error(client):
    response = client.post("/api/verification/verify", json={"phone": PHONE, "code": 1234})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid or expired code."
