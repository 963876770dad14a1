"""
Leave balance (ledger) endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from hr_leave.core.deps import get_db, get_current_user, require_roles
from hr_leave.core.exceptions import NotFoundError, PermissionDeniedError
from hr_leave.models.employee import Employee, Role
from hr_leave.schemas.balance import (
    LeaveBalanceOut,
    LeaveBalanceListResponse,
    LeaveTransactionOut,
    BalanceAdjustRequest,
)
from hr_leave.services import ledger_service, leave_request_service

router = APIRouter()


def _resolve_employee(db: Session, current_user: Employee, employee_id: Optional[int]) -> Employee:
    """The employee whose ledger current_user may read (self when employee_id is omitted)"""
    if employee_id is None or employee_id == current_user.id:
        return current_user
    visible = leave_request_service.visible_employee_ids(db, current_user)
    if visible is not None and employee_id not in visible:
        raise PermissionDeniedError("Not allowed to view this employee's balances")
    employee = db.query(Employee).filter(
        Employee.id == employee_id,
        Employee.organization_id == current_user.organization_id,
    ).first()
    if not employee:
        raise NotFoundError(f"Employee with id {employee_id} not found")
    return employee


@router.get("/me", response_model=LeaveBalanceListResponse)
async def my_balances_endpoint(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """Current user's balance per active leave type (ledger rows are created on first read)"""
    rows = ledger_service.get_balances(db, current_user)
    return LeaveBalanceListResponse(
        employee_id=current_user.id,
        items=[LeaveBalanceOut.model_validate(row) for row in rows],
    )


@router.get("", response_model=LeaveBalanceListResponse)
async def employee_balances_endpoint(
    employee_id: int = Query(..., description="Employee whose balances to read"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """
    Balances of another employee

    - ADMIN / HR: anyone in the organization
    - MANAGER: own reporting tree
    """
    employee = _resolve_employee(db, current_user, employee_id)
    rows = ledger_service.get_balances(db, employee)
    return LeaveBalanceListResponse(
        employee_id=employee.id,
        items=[LeaveBalanceOut.model_validate(row) for row in rows],
    )


@router.get("/transactions", response_model=List[LeaveTransactionOut])
async def balance_transactions_endpoint(
    employee_id: Optional[int] = Query(None, description="Defaults to the current user"),
    leave_type_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """Ledger journal, newest first"""
    employee = _resolve_employee(db, current_user, employee_id)
    rows = ledger_service.list_transactions(db, employee.id, leave_type_id=leave_type_id, limit=limit)
    return [LeaveTransactionOut.model_validate(row) for row in rows]


@router.post("/adjust", response_model=LeaveBalanceOut)
async def adjust_balance_endpoint(
    data: BalanceAdjustRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """
    Manual balance correction (HR/ADMIN)

    Bound by the leave type's min/max balance like any other ledger write.
    """
    ledger = ledger_service.adjust_balance(
        db=db,
        organization_id=current_user.organization_id,
        employee_id=data.employee_id,
        leave_type_id=data.leave_type_id,
        delta=data.delta,
        remarks=data.remarks,
        actor_id=current_user.id,
    )
    return LeaveBalanceOut.model_validate(ledger)
