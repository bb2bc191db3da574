"""
Pytest configuration and fixtures for ContractFlow API tests
"""

import os
import uuid
from datetime import date
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# Set test environment variable before any imports
os.environ["TESTING"] = "true"

from app.core.security import SecurityUtils
from app.db.database import Base, SessionLocal, engine, get_db
from app.db.seed import seed_roles
from app.main import app, init_app_state
from app.models.contract import Contract, ContractStatus
from app.models.user import Role, RoleCode, User
from app.models.workflow import (
    WorkflowDefinition,
    WorkflowStatus,
    WorkflowStep,
    WorkflowStepType,
)
from app.services.auth_service import AuthService

TEST_PASSWORD = "TestPass123!"

# Tables are created from the models; there are no migrations
Base.metadata.create_all(bind=engine)

TestingSessionLocal = SessionLocal


def override_get_db():
    """Override database dependency for testing"""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def db_session():
    """Create a fresh database session for each test"""
    db = TestingSessionLocal()
    init_app_state(app)

    try:
        yield db
    finally:
        db.rollback()
        try:
            for table in reversed(Base.metadata.sorted_tables):
                db.execute(table.delete())
            db.commit()
        except Exception as e:
            print(f"Warning: Database cleanup failed: {e}")
            db.rollback()
        finally:
            db.close()


@pytest.fixture(scope="function")
def client() -> Generator:
    """Create a test client"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def roles(db_session):
    """System roles keyed by code"""
    seed_roles(db_session)
    db_session.commit()
    return {role.code: role for role in db_session.query(Role).all()}


@pytest.fixture
def make_user(db_session, roles):
    """Factory creating an active user with the given role"""
    security = SecurityUtils()

    def _make_user(role_code: RoleCode, name: str = None, email: str = None, **kwargs):
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=email or f"{role_code.value.lower()}_{suffix}@example.com",
            name=name or f"{role_code.value.title()} {suffix}",
            hashed_password=security.get_password_hash(TEST_PASSWORD),
            role_id=roles[role_code.value].id,
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def test_user(make_user):
    """Contract initiator"""
    return make_user(RoleCode.INITIATOR, name="Test User", email="test@example.com")


@pytest.fixture
def admin_user(make_user):
    return make_user(RoleCode.ADMINISTRATOR, name="Admin User", email="admin@example.com")


@pytest.fixture
def manager_user(make_user):
    return make_user(RoleCode.INITIATOR_MANAGER, name="Manager User")


@pytest.fixture
def lawyer_user(make_user):
    return make_user(RoleCode.CHIEF_LAWYER, name="Lawyer User")


@pytest.fixture
def director_user(make_user):
    return make_user(RoleCode.GENERAL_DIRECTOR, name="Director User")


@pytest.fixture
def token_headers(db_session):
    """Factory building bearer headers for any user without a login round trip"""

    def _headers(user: User):
        token = AuthService(db_session).create_token_for(user)
        return {"Authorization": f"Bearer {token.access_token}"}

    return _headers


@pytest.fixture
def auth_headers(client, test_user):
    """Get authentication headers for test user"""
    response = client.post(
        "/v1/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD}
    )

    assert response.status_code == 200
    token = response.json()["access_token"]

    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_auth_headers(client, admin_user):
    """Get authentication headers for admin user"""
    response = client.post(
        "/v1/auth/login", json={"email": admin_user.email, "password": TEST_PASSWORD}
    )

    assert response.status_code == 200
    token = response.json()["access_token"]

    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def standard_workflow(db_session, roles):
    """Three sequential steps: manager (3 days), lawyer (5 days), director (3 days)"""
    workflow = WorkflowDefinition(
        name="Стандартный маршрут",
        status=WorkflowStatus.ACTIVE,
        is_default=True,
    )
    workflow.steps = [
        WorkflowStep(
            name="Руководитель инициатора",
            type=WorkflowStepType.APPROVAL,
            order=1,
            role_id=roles[RoleCode.INITIATOR_MANAGER.value].id,
            due_days=3,
        ),
        WorkflowStep(
            name="Юридическая экспертиза",
            type=WorkflowStepType.APPROVAL,
            order=2,
            role_id=roles[RoleCode.CHIEF_LAWYER.value].id,
            due_days=5,
        ),
        WorkflowStep(
            name="Генеральный директор",
            type=WorkflowStepType.APPROVAL,
            order=3,
            role_id=roles[RoleCode.GENERAL_DIRECTOR.value].id,
            due_days=3,
        ),
    ]
    db_session.add(workflow)
    db_session.commit()
    db_session.refresh(workflow)
    return workflow


@pytest.fixture
def make_contract(db_session, test_user):
    """Factory creating a DRAFT contract owned by the test user"""

    def _make_contract(amount="500000", workflow=None, **kwargs):
        contract = Contract(
            number=kwargs.pop("number", f"CN-{uuid.uuid4().hex[:8].upper()}"),
            title=kwargs.pop("title", "Поставка оборудования"),
            counterparty=kwargs.pop("counterparty", 'ООО "Ромашка"'),
            amount=Decimal(amount),
            start_date=kwargs.pop("start_date", date(2026, 1, 1)),
            end_date=kwargs.pop("end_date", date(2026, 12, 31)),
            status=kwargs.pop("status", ContractStatus.DRAFT),
            initiator_id=kwargs.pop("initiator_id", test_user.id),
            workflow_id=workflow.id if workflow else None,
            **kwargs,
        )
        db_session.add(contract)
        db_session.commit()
        db_session.refresh(contract)
        return contract

    return _make_contract
