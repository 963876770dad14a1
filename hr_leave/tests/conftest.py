"""
Pytest configuration and fixtures
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine
from hr_leave.main import app
from hr_leave.db.base import Base
from hr_leave.core.deps import get_db
from hr_leave.core.security import hash_password

# Import all models to ensure they're registered with Base.metadata
from hr_leave.models import (
    Organization,
    Department,
    Employee,
    Role,
    AuditLog,
    LeaveType,
    EmployeeLeaveBalance,
    LeaveRequest,
    LeaveApproval,
    LeaveTransaction,
    AccrualMethod,
)  # noqa


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_PASSWORD = "testpass123"
# bcrypt is slow; hash once for every fixture employee
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Enable foreign keys for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Test client fixture with database override"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db: Session):
    org = Organization(name="Acme Corp", active_flag=True)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@pytest.fixture
def department(db: Session, organization):
    dept = Department(organization_id=organization.id, name="Engineering", active=True)
    db.add(dept)
    db.commit()
    db.refresh(dept)
    return dept


@pytest.fixture
def sales_department(db: Session, organization):
    dept = Department(organization_id=organization.id, name="Sales", active=True)
    db.add(dept)
    db.commit()
    db.refresh(dept)
    return dept


def _create_employee(db, organization, department, emp_code, name, role, manager=None, join_date=None):
    employee = Employee(
        organization_id=organization.id,
        emp_code=emp_code,
        name=name,
        role=role.value,
        department_id=department.id,
        reporting_manager_id=manager.id if manager else None,
        password_hash=TEST_PASSWORD_HASH,
        join_date=join_date or date(2020, 1, 1),
        active=True,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


@pytest.fixture
def admin_employee(db: Session, organization, department):
    return _create_employee(db, organization, department, "ADM001", "Admin", Role.ADMIN)


@pytest.fixture
def hr_employee(db: Session, organization, department):
    return _create_employee(db, organization, department, "HR001", "HR Officer", Role.HR)


@pytest.fixture
def manager_employee(db: Session, organization, department):
    return _create_employee(db, organization, department, "MGR001", "Manager", Role.MANAGER)


@pytest.fixture
def employee(db: Session, organization, department, manager_employee):
    """Employee reporting to manager_employee"""
    return _create_employee(db, organization, department, "EMP001", "Reportee", Role.EMPLOYEE, manager=manager_employee)


@pytest.fixture
def other_employee(db: Session, organization, sales_department):
    """Employee outside manager_employee's reporting tree"""
    return _create_employee(db, organization, sales_department, "EMP002", "Outsider", Role.EMPLOYEE)


@pytest.fixture
def make_employee(db: Session, organization, department):
    def _make(emp_code, name="Employee", role=Role.EMPLOYEE, manager=None, join_date=None, dept=None):
        return _create_employee(db, organization, dept or department, emp_code, name, role, manager, join_date)
    return _make


@pytest.fixture
def make_leave_type(db: Session, organization):
    """Factory for leave types; defaults to a non-accruing type with 10 days opening balance"""
    def _make(**overrides):
        values = {
            "organization_id": organization.id,
            "code": "AL",
            "name": "Annual Leave",
            "accrual_method": AccrualMethod.NONE,
            "accrual_rate": Decimal("0"),
            "initial_balance": Decimal("10"),
            "min_balance": Decimal("0"),
            "requires_approval": True,
            "approval_levels": 1,
            "required_documents": [],
            "blackout_dates": [],
        }
        values.update(overrides)
        leave_type = LeaveType(**values)
        db.add(leave_type)
        db.commit()
        db.refresh(leave_type)
        return leave_type
    return _make


@pytest.fixture
def auth_headers(client):
    """Log in through the API and return bearer headers for an employee code"""
    def _headers(emp_code, password=TEST_PASSWORD):
        response = client.post(
            "/api/v1/auth/login",
            json={"emp_code": emp_code, "password": password},
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _headers
