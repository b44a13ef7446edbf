# tests/conftest.py
import pytest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from fleetdesk.main import app
from fleetdesk.db.database import Base, get_db
from fleetdesk.auth.identity import get_current_user_id
from fleetdesk.auth.session import CallerSession

# Import models so metadata knows about all tables
import fleetdesk.models.company
import fleetdesk.models.profile
import fleetdesk.models.dispatcher_association
import fleetdesk.models.driver_association


@pytest.fixture(scope="session")
def engine():
    """In-memory SQLite database shared across tests (one connection, any thread)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clean_db(engine):
    """Reset all tables before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture()
def db(engine):
    """Return a new SQLAlchemy session for each test."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def owner_company(db):
    """An owner profile and the company it owns."""
    from fleetdesk.models.company import Company
    from fleetdesk.models.profile import Profile

    company = Company(name="Acme Freight", owner_id="owner-1")
    db.add(company)
    db.commit()
    db.refresh(company)

    db.add(Profile(id="owner-1", email="owner@acme.test", name="Olive Owner", role="owner", company_id=company.id))
    db.commit()
    return company


@pytest.fixture
def owner():
    return CallerSession(user_id="owner-1", role="owner")


@pytest.fixture
def current_user():
    """Mutable holder for the user id the test client authenticates as."""
    return {"user_id": "owner-1"}


@pytest.fixture
def client(db, current_user):
    """FastAPI test client that routes DB and auth deps to test doubles."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    async def override_get_current_user_id():
        return current_user["user_id"]

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = override_get_current_user_id

    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
