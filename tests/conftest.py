"""
Shared test fixtures
SQLite file database, one user per role, a deterministic workflow config
and a mocked notification dispatcher
"""

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.config.database import Base, get_db
from src.config.workflow import WorkflowConfig
from src.main import app
from src.models.finance_request import FinanceRequest, PaymentType  # noqa: F401
from src.models.sla_log import SLALog  # noqa: F401
from src.models.user import Entity, User, UserRole
from src.services.workflow_service import WorkflowService
from src.services.sla_sweeper import SLASweeper
from src.utils.security import get_password_hash

# Test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "testpass123"


@pytest.fixture(scope="function")
def test_db():
    """Create test database"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    """Session used by the test and the services under test"""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def entities(db):
    head_office = Entity(code="HQ", name="Head Office")
    subsidiary = Entity(code="OPS", name="Operations Subsidiary")
    db.add_all([head_office, subsidiary])
    db.commit()
    return {"HQ": head_office, "OPS": subsidiary}


def _make_user(db, username, role, entities=()):
    user = User(
        email=f"{username}@example.com",
        username=username,
        full_name=username.replace("_", " ").title(),
        employee_id=f"EMP-{username.upper()}",
        hashed_password=get_password_hash(PASSWORD),
        role=role,
        department="Testing",
        is_active=True,
        entities=list(entities),
    )
    db.add(user)
    return user


@pytest.fixture
def users(db, entities):
    """One user per role in HQ, plus a finance user assigned only to OPS"""
    hq = [entities["HQ"]]
    created = {
        "employee": _make_user(db, "employee", UserRole.EMPLOYEE, hq),
        "other_employee": _make_user(db, "other_employee", UserRole.EMPLOYEE, hq),
        "finance": _make_user(db, "finance", UserRole.FINANCE_TEAM, hq),
        "finance_ops": _make_user(db, "finance_ops", UserRole.FINANCE_TEAM, [entities["OPS"]]),
        "controller": _make_user(db, "controller", UserRole.FINANCE_CONTROLLER, hq),
        "director": _make_user(db, "director", UserRole.DIRECTOR, hq),
        "md": _make_user(db, "md", UserRole.MD, hq),
        "admin": _make_user(db, "admin", UserRole.ADMIN, hq),
    }
    db.commit()
    return created


@pytest.fixture
def config():
    return WorkflowConfig()


@pytest.fixture
def notifier():
    mock = AsyncMock()
    mock.notify.return_value = True
    return mock


@pytest.fixture
def service(config, notifier):
    return WorkflowService(config, notifier=notifier)


@pytest.fixture
def sweeper(config, notifier):
    return SLASweeper(config, notifier=notifier)


@pytest.fixture
def request_data(entities):
    """Factory for create_request payloads"""
    def build(**overrides):
        data = {
            "entity_id": entities["HQ"].id,
            "purpose": "Annual software licence renewal",
            "vendor_name": "Acme Software Pvt Ltd",
            "vendor_bank_account": "001234567890",
            "vendor_bank_ifsc": "HDFC0001234",
            "invoice_number": "INV-2024-001",
            "payment_type": PaymentType.NON_CRITICAL,
            "amount": 1000.0,
            "currency": "USD",
            "exchange_rate": 83.0,
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def sent(notifier):
    """(kind, recipient ids) pairs passed to the mocked dispatcher, in call order"""
    def calls():
        return [(c.args[2], sorted(c.args[1])) for c in notifier.notify.call_args_list]

    return calls


def override_get_db():
    """Override database dependency for testing"""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(test_db):
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client, users):
    """Bearer headers for a seeded user"""
    def headers(username):
        response = client.post("/api/auth/login", data={"username": username, "password": PASSWORD})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return headers


@pytest.fixture
def session_factory(test_db):
    """Factory for extra sessions, e.g. a second concurrent approver"""
    return TestingSessionLocal


@pytest.fixture
def password():
    return PASSWORD
