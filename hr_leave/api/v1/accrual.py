"""
Accrual and year-end endpoints (HR-only)
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from hr_leave.core.deps import get_db, require_roles
from hr_leave.models.employee import Role, Employee
from hr_leave.schemas.balance import (
    AccrualRunRequest,
    AccrualRunResponse,
    YearCloseRequest,
    YearCloseResponse,
    ExpireCarryForwardRequest,
    CarryForwardExpiryResponse,
    AccrualStatusItem,
)
from hr_leave.services import ledger_service

router = APIRouter()


@router.post("/run", response_model=AccrualRunResponse)
async def run_accrual_endpoint(
    data: Optional[AccrualRunRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """
    Credit every accrual period due on or before as_of (default today).

    Idempotent: running twice for the same date does not double-credit.
    """
    as_of = (data.as_of if data else None) or date.today()
    return ledger_service.run_accrual(
        db=db,
        organization_id=current_user.organization_id,
        as_of=as_of,
        actor_id=current_user.id,
    )


@router.post("/year-close", response_model=YearCloseResponse)
async def year_close_endpoint(
    data: YearCloseRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """
    Carry-forward rollover for the given year.

    Balances above carry_forward_limit are forfeited (reported as encashable
    where the leave type allows encashment). Rows already closed are skipped.
    """
    return ledger_service.run_year_close(
        db=db,
        organization_id=current_user.organization_id,
        year=data.year,
        actor_id=current_user.id,
    )


@router.post("/expire-carry-forward", response_model=CarryForwardExpiryResponse)
async def expire_carry_forward_endpoint(
    data: Optional[ExpireCarryForwardRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """Forfeit carried days whose expiry date is on or before as_of (default today)"""
    as_of = (data.as_of if data else None) or date.today()
    return ledger_service.expire_carry_forward(
        db=db,
        organization_id=current_user.organization_id,
        as_of=as_of,
        actor_id=current_user.id,
    )


@router.get("/status", response_model=List[AccrualStatusItem])
async def accrual_status_endpoint(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """Ledger position per employee and leave type, for verification"""
    return ledger_service.get_accrual_status(db, current_user.organization_id)
