"""
HR Leave Service - Main Application Entry Point
"""
import logging
from datetime import date
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from hr_leave.api.router import api_router
from hr_leave.core.config import settings
from hr_leave.core.errors import (
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from hr_leave.core.logging import setup_logging
from hr_leave.core.security import hash_password
from hr_leave.db.session import SessionLocal, init_sqlite_schema
from hr_leave.models.department import Department
from hr_leave.models.employee import Employee, Role
from hr_leave.models.organization import Organization

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.startswith("sqlite"):
            return url
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***"
    return url


app = FastAPI(
    title="HR Leave Service",
    description="Leave policy catalog, balance ledger, request workflow and statistics",
    version=settings.VERSION or "1.0.0"
)

# CORS must be registered before other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# All API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    logger.info("DATABASE_URL (app): %s", _mask_database_url(settings.DATABASE_URL))
    init_sqlite_schema()


@app.on_event("startup")
def bootstrap_initial_admin() -> None:
    """
    Create the initial organization, department and admin employee if no admin exists.
    """
    db = SessionLocal()
    try:
        admin_exists = db.query(Employee).filter(
            (Employee.emp_code == settings.INITIAL_ADMIN_CODE) |
            (Employee.role == Role.ADMIN.value)
        ).first()
        if admin_exists:
            logger.info("Admin user already exists, skipping initial bootstrap")
            return

        logger.info("No admin user found, creating initial admin setup...")

        organization = db.query(Organization).filter(
            Organization.name == settings.INITIAL_ORGANIZATION_NAME
        ).first()
        if not organization:
            organization = Organization(name=settings.INITIAL_ORGANIZATION_NAME, active_flag=True)
            db.add(organization)
            db.flush()
            logger.info("Created organization: %s", organization.name)

        department = db.query(Department).filter(
            Department.organization_id == organization.id,
            Department.name == "Administration",
        ).first()
        if not department:
            department = Department(organization_id=organization.id, name="Administration", active=True)
            db.add(department)
            db.flush()
            logger.info("Created department: %s", department.name)

        db.add(Employee(
            organization_id=organization.id,
            emp_code=settings.INITIAL_ADMIN_CODE,
            name="System Administrator",
            role=Role.ADMIN.value,
            department_id=department.id,
            password_hash=hash_password(settings.INITIAL_ADMIN_PASSWORD),
            join_date=date.today(),
            active=True,
        ))
        db.commit()

        logger.info("Initial admin user created successfully")
        logger.info("Employee Code: %s", settings.INITIAL_ADMIN_CODE)
        logger.info("Password: [set via INITIAL_ADMIN_PASSWORD environment variable]")
    except OperationalError as e:
        db.rollback()
        # Tables may not exist yet on non-SQLite databases before migrations run
        if "no such table" in str(e).lower() or "does not exist" in str(e).lower():
            logger.warning("Database tables not ready yet, skipping initial bootstrap (run alembic upgrade head)")
        else:
            logger.error("Database error during admin bootstrap: %s", e)
    finally:
        db.close()
