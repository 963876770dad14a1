"""
Authentication endpoints
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from hr_leave.core.config import settings
from hr_leave.core.deps import get_db
from hr_leave.core.security import verify_password, create_access_token
from hr_leave.models.employee import Employee
from hr_leave.schemas.auth import LoginRequest, TokenResponse
from hr_leave.services.audit_service import log_audit

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return JWT token

    Validates emp_code and password, rejects inactive employees.
    """
    employee = db.query(Employee).filter(Employee.emp_code == login_data.emp_code).first()

    if not employee:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid employee code or password"
        )

    if not employee.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive"
        )

    if employee.password_hash is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No password set for this account"
        )

    if not verify_password(login_data.password, employee.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid employee code or password"
        )

    # JWT 'sub' claim must be a string
    token_data = {
        "sub": str(employee.id),
        "emp_code": employee.emp_code,
        "role": employee.role,
        "org": employee.organization_id,
    }
    access_token = create_access_token(data=token_data)

    log_audit(
        db=db,
        actor_id=employee.id,
        action="AUTH_LOGIN_SUCCESS",
        entity_type="auth",
        meta={"emp_code": employee.emp_code, "role": employee.role},
        organization_id=employee.organization_id,
    )
    logger.info("login: employee_id=%s emp_code=%s", employee.id, employee.emp_code)

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
        employee_id=employee.id,
        organization_id=employee.organization_id,
        role=employee.role,
    )
