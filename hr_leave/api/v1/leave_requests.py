"""
Leave request workflow endpoints
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from hr_leave.core.deps import get_db, get_current_user, require_roles, Pagination
from hr_leave.models.employee import Employee, Role
from hr_leave.models.leave import LeaveStatus
from hr_leave.schemas.leave_request import (
    LeaveSubmitRequest,
    LeaveUpdateRequest,
    DecisionRequest,
    RejectRequest,
    BulkDecisionRequest,
    BulkDecisionResponse,
    LeaveRequestOut,
    LeaveRequestListResponse,
    LeaveStatisticsOut,
)
from hr_leave.services import leave_request_service, statistics_service

router = APIRouter()


@router.post("", response_model=LeaveRequestOut, status_code=201)
async def submit_leave_endpoint(
    data: LeaveSubmitRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """
    Submit a leave request for the current user

    Validations:
    - end_date >= start_date, half day on a single date
    - no overlap with PENDING/APPROVED requests (409)
    - leave type policy: advance notice, service months, max consecutive days,
      blackout dates, required documents, current balance (422 POLICY_VIOLATION)

    Requests covered by auto-approval are returned already APPROVED.
    """
    leave_request = leave_request_service.submit_leave_request(db=db, employee=current_user, data=data)
    return LeaveRequestOut.model_validate(leave_request)


@router.get("", response_model=LeaveRequestListResponse)
async def list_leave_requests_endpoint(
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[int] = Query(None),
    employee_id: Optional[int] = Query(None),
    department_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from", description="Requests ending on or after (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, alias="to", description="Requests starting on or before (YYYY-MM-DD)"),
    is_half_day: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Employee name or code"),
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """
    List leave requests with role-based scoping

    - ADMIN / HR: whole organization
    - MANAGER: own requests and the reporting tree
    - EMPLOYEE: own requests
    """
    items, total = leave_request_service.list_leave_requests(
        db=db,
        current_user=current_user,
        status=status,
        leave_type_id=leave_type_id,
        employee_id=employee_id,
        department_id=department_id,
        date_from=date_from,
        date_to=date_to,
        is_half_day=is_half_day,
        search=search,
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return LeaveRequestListResponse(
        items=[LeaveRequestOut.model_validate(item) for item in items],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get("/statistics", response_model=LeaveStatisticsOut)
async def leave_statistics_endpoint(
    date_from: Optional[date] = Query(None, alias="from", description="start_date on or after (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, alias="to", description="start_date on or before (YYYY-MM-DD)"),
    department_id: Optional[int] = Query(None),
    employee_id: Optional[int] = Query(None),
    leave_type_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR, Role.MANAGER))
):
    """Request counts by status and days requested; managers see their reporting tree only"""
    stats = statistics_service.get_leave_statistics(
        db=db,
        organization_id=current_user.organization_id,
        date_from=date_from,
        date_to=date_to,
        department_id=department_id,
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        employee_ids=leave_request_service.visible_employee_ids(db, current_user),
    )
    return LeaveStatisticsOut(**stats)


@router.post("/bulk-approve", response_model=BulkDecisionResponse)
async def bulk_approve_endpoint(
    data: BulkDecisionRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR, Role.MANAGER))
):
    """
    Approve several requests; each is processed independently.

    A failing item (e.g. INSUFFICIENT_BALANCE) is reported and stays PENDING.
    """
    result = leave_request_service.bulk_approve(
        db=db,
        leave_request_ids=data.leave_request_ids,
        approver=current_user,
        comments=data.comments,
    )
    return BulkDecisionResponse(**result)


@router.post("/bulk-reject", response_model=BulkDecisionResponse)
async def bulk_reject_endpoint(
    data: BulkDecisionRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR, Role.MANAGER))
):
    result = leave_request_service.bulk_reject(
        db=db,
        leave_request_ids=data.leave_request_ids,
        approver=current_user,
        comments=data.comments,
    )
    return BulkDecisionResponse(**result)


@router.get("/{leave_request_id}", response_model=LeaveRequestOut)
async def get_leave_request_endpoint(
    leave_request_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    leave_request = leave_request_service.get_leave_request(db, current_user, leave_request_id)
    return LeaveRequestOut.model_validate(leave_request)


@router.put("/{leave_request_id}", response_model=LeaveRequestOut)
async def update_leave_request_endpoint(
    leave_request_id: int,
    data: LeaveUpdateRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """
    Edit an own PENDING request

    The edited request is re-checked like a new submission (409 on overlap,
    422 POLICY_VIOLATION) and may become auto-approved.
    """
    leave_request = leave_request_service.update_leave_request(
        db=db,
        leave_request_id=leave_request_id,
        actor=current_user,
        data=data,
    )
    return LeaveRequestOut.model_validate(leave_request)


@router.delete("/{leave_request_id}", response_model=LeaveRequestOut)
async def delete_leave_request_endpoint(
    leave_request_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """Withdraw a PENDING request (soft delete)"""
    leave_request = leave_request_service.delete_leave_request(
        db=db,
        leave_request_id=leave_request_id,
        actor=current_user,
    )
    return LeaveRequestOut.model_validate(leave_request)


@router.post("/{leave_request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave_endpoint(
    leave_request_id: int,
    data: DecisionRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """
    Approve a PENDING request and debit the ledger

    - ADMIN / HR: any request in the organization
    - MANAGER: requests of direct and indirect reportees
    - nobody approves their own request
    """
    leave_request = leave_request_service.approve_leave_request(
        db=db,
        leave_request_id=leave_request_id,
        approver=current_user,
        comments=data.comments,
    )
    return LeaveRequestOut.model_validate(leave_request)


@router.post("/{leave_request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave_endpoint(
    leave_request_id: int,
    data: RejectRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """Reject a PENDING request (same authority as approve)"""
    leave_request = leave_request_service.reject_leave_request(
        db=db,
        leave_request_id=leave_request_id,
        approver=current_user,
        comments=data.comments,
    )
    return LeaveRequestOut.model_validate(leave_request)


@router.post("/{leave_request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave_endpoint(
    leave_request_id: int,
    data: DecisionRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """Cancel a PENDING or APPROVED request; approved days are credited back"""
    leave_request = leave_request_service.cancel_leave_request(
        db=db,
        leave_request_id=leave_request_id,
        actor=current_user,
        comments=data.comments,
    )
    return LeaveRequestOut.model_validate(leave_request)
