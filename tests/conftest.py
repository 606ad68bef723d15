import os
import pytest
from jose import jwt

# Test DB URL and JWT secret must be in place before app/database are imported
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite:///./test_dulu.db")
TEST_JWT_SECRET = "test-jwt-secret"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET_KEY"] = TEST_JWT_SECRET
os.environ.setdefault("JWT_ALGORITHM", "HS256")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

import models  # noqa: F401  registers every table on Base.metadata
from app import app
from database import Base, get_db
from api.dependencies import get_messaging_client, get_pawapay_client
from models.user import User
from services.messaging_service import MessagingError
from services.pawapay_service import PawaPayError

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeMessagingClient:
    """Records every dispatched code instead of calling Twilio."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_code(self, destination, code, channel="whatsapp"):
        if self.fail:
            raise MessagingError("Twilio rejected the message")
        self.sent.append({"to": destination, "code": code, "channel": channel})
        return f"SM{len(self.sent):032d}"

    @property
    def last_code(self):
        return self.sent[-1]["code"]


class FakePawaPayClient:
    """In-memory stand-in for PawaPayClient."""

    def __init__(self):
        self.requests = []
        self.initiation_status = "ACCEPTED"
        self.initiation_extra = {}
        self.error = None
        self.deposits = {}
        self.correspondents = []
        self.predicted = None

    def initiate_deposit(self, deposit_request):
        self.requests.append(deposit_request)
        if self.error is not None:
            raise self.error
        return {
            "depositId": deposit_request["depositId"],
            "status": self.initiation_status,
            "created": "2026-10-17T09:00:00Z",
            **self.initiation_extra,
        }

    def get_deposit(self, deposit_id):
        if self.error is not None:
            raise self.error
        if deposit_id not in self.deposits:
            raise PawaPayError(f"pawaPay has no deposit {deposit_id}")
        return self.deposits[deposit_id]

    def get_active_configuration(self):
        return self.correspondents

    def predict_correspondent(self, msisdn):
        return self.predicted


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    # Create tables before any tests
    Base.metadata.create_all(bind=engine)
    yield
    # Drop tables after all tests
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def messaging():
    return FakeMessagingClient()


@pytest.fixture
def pawapay():
    return FakePawaPayClient()


@pytest.fixture
def client(db, messaging, pawapay):
    # Override get_db dependency to use the test DB
    def override_get_db():
        try:
            yield db
        finally:
            db.close()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_messaging_client] = lambda: messaging
    app.dependency_overrides[get_pawapay_client] = lambda: pawapay
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def user(db):
    user = User(phone="+237691234567", full_name="Awa Ngono")
    db.add(user)
    db.commit()
    db.refresh(user)
    # Detached snapshot; later commits in the shared session must not expire it
    db.expunge(user)
    return user


def create_jwt(user_id, role="USER"):
    payload = {"sub": str(user_id), "role": role}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(user_id, role="USER"):
    return {"Authorization": f"Bearer {create_jwt(user_id, role)}"}
