"""
Test Configuration and Fixtures
Shared testing infrastructure for VTRIA ERP
"""
import os

# Settings are read at import time, so the test environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_vtria.db")
os.environ["ENABLE_SLA_SCHEDULER"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["LOG_TO_FILE"] = "false"

import pytest
from typing import Any, Callable, Dict, Generator
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from vtria_erp.main import app
from vtria_erp.core.database import Base, get_db
from vtria_erp.core.security import create_access_token
from vtria_erp.models.client import Client
from vtria_erp.models.hr import Employee
from vtria_erp.models.inventory import Product, Warehouse
from vtria_erp.models.location_access import OfficeLocation
from vtria_erp.models.user import User
from vtria_erp.services.auth_service import AuthService
from vtria_erp.services.hr import EmployeeService
from vtria_erp.services.location_access import LocationAccessService
from vtria_erp.services.reference_data import seed_reference_data
import vtria_erp.models  # noqa: F401

TEST_DATABASE_URL = os.environ["DATABASE_URL"]
TEST_PASSWORD = "testpassword123"

# Create test engine
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh, seeded database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    seed_reference_data(session)
    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Not entered as a context manager: startup hooks would touch the real engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db_session: Session) -> Callable[..., User]:
    """Create (or reuse) one user per role"""
    created: Dict[str, User] = {}

    def make(role: str = "technician", username: str = None) -> User:
        username = username or role.replace("-", "_")
        if username in created:
            return created[username]
        user = AuthService(db_session).create_user({
            "username": username,
            "email": f"{username}@vtria-test.com",
            "full_name": f"{role.title()} User",
            "password": TEST_PASSWORD,
            "role": role,
        })
        created[username] = user
        return user

    return make


@pytest.fixture
def director(user_factory) -> User:
    return user_factory("director")


@pytest.fixture
def admin(user_factory) -> User:
    return user_factory("admin")


@pytest.fixture
def technician(user_factory) -> User:
    return user_factory("technician")


@pytest.fixture
def auth_headers_for(user_factory) -> Callable[[str], Dict[str, str]]:
    """Bearer headers for a user holding the given role"""
    def headers(role: str) -> Dict[str, str]:
        user = user_factory(role)
        token = create_access_token(data={"sub": str(user.id), "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest.fixture
def sample_client(db_session: Session, director: User) -> Client:
    client = Client(
        company_name="Acme Water Works",
        contact_person="R. Iyer",
        email="purchase@acmewater.com",
        city="Pune",
        state="Maharashtra",
        status="active",
        created_by=director.id,
    )
    db_session.add(client)
    db_session.commit()
    db_session.refresh(client)
    return client


@pytest.fixture
def sample_product(db_session: Session) -> Product:
    product = Product(
        product_code="VFD-75",
        name="75kW Variable Frequency Drive",
        category="drives",
        unit="nos",
        mrp=Decimal("250000"),
        last_price=Decimal("200000"),
        reorder_level=Decimal("2"),
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture
def warehouses(db_session: Session) -> Dict[str, Warehouse]:
    main = Warehouse(code="MAIN", name="Main Stores")
    site = Warehouse(code="SITE", name="Site Stores")
    db_session.add_all([main, site])
    db_session.commit()
    return {"main": main, "site": site}


@pytest.fixture
def sample_employee_data() -> Dict[str, Any]:
    """Sample employee payload for API tests"""
    return {
        "first_name": "Priya",
        "last_name": "Sharma",
        "email": "priya.sharma@vtria-test.com",
        "phone": "+91 98200 00000",
        "designation": "Design Engineer",
        "employee_type": "full_time",
        "date_of_joining": "2024-06-03",
    }


@pytest.fixture
def session_factory(db_session: Session) -> Callable[[], Session]:
    """Session factory bound to the test engine, for code that opens its own sessions"""
    return TestingSessionLocal


@pytest.fixture
def employee(db_session: Session, director: User, sample_employee_data: Dict[str, Any]) -> Employee:
    data = dict(sample_employee_data, date_of_joining=date(2024, 6, 3))
    return EmployeeService(db_session).create_employee(data, director)


@pytest.fixture
def office(db_session: Session) -> OfficeLocation:
    """Head office geofence with a 100m radius"""
    return LocationAccessService(db_session).create_location({
        "location_name": "Head Office",
        "city": "Mumbai",
        "latitude": 19.0760,
        "longitude": 72.8777,
        "radius_meters": 100,
        "location_type": "head_office",
    })
