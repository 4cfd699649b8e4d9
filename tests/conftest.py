"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema created per test (app code commits)
- Default catalogs seeded
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"

from parish_census.main import app
from parish_census.core.deps import COOKIE_NAME, get_db
from parish_census.core.security import create_session_token
from parish_census.db.base import Base
from parish_census.db.enums import Role
from parish_census.db.models import User
from parish_census.db.session import SessionLocal, engine
from parish_census.services import catalog_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test with the default catalogs seeded.

    Services commit and roll back for real, so isolation comes from
    recreating the schema rather than from an outer transaction.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    catalog_service.seed_defaults(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _create_user(db: Session, role: Role, name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@parroquia.test",
        display_name=name,
        role=role.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def test_user(db: Session) -> User:
    """Surveyor who owns the drafts created by authed_client."""
    return _create_user(db, Role.SURVEYOR, "Test Surveyor")


@pytest.fixture(scope="function")
def admin_user(db: Session) -> User:
    return _create_user(db, Role.ADMIN, "Parish Admin")


@pytest.fixture(scope="function")
def coordinator_user(db: Session) -> User:
    return _create_user(db, Role.COORDINATOR, "Sector Coordinator")


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def _auth_for(user: User) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        role=user.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


@pytest.fixture(scope="function")
def test_auth(test_user: User) -> TestAuth:
    """Create JWT token for test user."""
    return _auth_for(test_user)


# =============================================================================
# Client Fixtures
# =============================================================================

def _override_db(db: Session) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


def _authed(token: str) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={COOKIE_NAME: token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    )


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    _override_db(db)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient (surveyor) with JWT cookie and CSRF header.
    """
    _override_db(db)

    async with _authed(test_auth.token) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def admin_client(db: Session, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    _override_db(db)

    async with _authed(_auth_for(admin_user).token) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def coordinator_client(
    db: Session, coordinator_user: User
) -> AsyncGenerator[AsyncClient, None]:
    _override_db(db)

    async with _authed(_auth_for(coordinator_user).token) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Payload helpers
# =============================================================================

def _survey_payload(**overrides) -> dict:
    """A complete interview for one household."""
    payload = {
        "general_info": {
            "surname": "García",
            "address": "Calle 1 # 2-3",
            "phone": "310-0001",
            "email": "garcia@example.com",
            "survey_date": "2026-03-14",
            "utility_contract_number": "EPM-4411",
            "sector": {"name": "San José"},
        },
        "housing": {
            "housing_type": {"name": "Casa"},
            "waste_disposal": {"collector": True, "burned": False, "recycled": True},
        },
        "water_services": {
            "aqueduct_system": {"name": "Acueducto público"},
            "wastewater": "Alcantarillado",
            "septic_tank": False,
            "latrine": False,
            "open_field": False,
        },
        "observations": {
            "livelihood": "Agricultura",
            "surveyor_notes": "Familia muy amable",
            "data_authorization": True,
        },
        "family_members": [
            {
                "names": "María José",
                "second_surname": "López",
                "birth_date": "1980-05-02",
                "identification_type": "CC",
                "identification_number": "43000111",
                "sex": "Femenino",
                "civil_status": "Casada",
                "relationship_to_head": "Jefe de hogar",
                "sizes": {"shirt": "M", "pants": "32", "shoes": "38"},
            },
        ],
        "deceased_members": [],
        "metadata": {"app_version": "2.1.0"},
    }
    for key, value in overrides.items():
        payload[key] = value
    return payload


@pytest.fixture
def make_survey_payload():
    """Factory for intake payloads; keyword arguments replace top-level sections."""
    return _survey_payload
