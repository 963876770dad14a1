"""
Leave type (policy catalog) endpoints
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from hr_leave.core.deps import get_db, get_current_user, require_roles, Pagination
from hr_leave.models.employee import Employee, Role
from hr_leave.schemas.leave_type import LeaveTypeCreate, LeaveTypeUpdate, LeaveTypeOut, LeaveTypeListResponse
from hr_leave.services import leave_type_service

router = APIRouter()


@router.post("", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type_endpoint(
    data: LeaveTypeCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """
    Create a leave type (HR/ADMIN)

    code must be unique within the organization (409 otherwise).
    """
    leave_type = leave_type_service.create_leave_type(
        db=db,
        organization_id=current_user.organization_id,
        data=data,
        actor_id=current_user.id,
    )
    return LeaveTypeOut.model_validate(leave_type)


@router.get("", response_model=LeaveTypeListResponse)
async def list_leave_types_endpoint(
    active_only: Optional[bool] = Query(None, description="Only active leave types"),
    search: Optional[str] = Query(None, description="Search by code or name"),
    pagination: Pagination = Depends(),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """List leave types of the current user's organization"""
    items, total = leave_type_service.list_leave_types(
        db=db,
        organization_id=current_user.organization_id,
        page=pagination.page,
        page_size=pagination.page_size,
        active_only=active_only,
        search=search,
    )
    return LeaveTypeListResponse(
        items=[LeaveTypeOut.model_validate(item) for item in items],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get("/{leave_type_id}", response_model=LeaveTypeOut)
async def get_leave_type_endpoint(
    leave_type_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    leave_type = leave_type_service.get_leave_type(db, current_user.organization_id, leave_type_id)
    return LeaveTypeOut.model_validate(leave_type)


@router.put("/{leave_type_id}", response_model=LeaveTypeOut)
async def update_leave_type_endpoint(
    leave_type_id: int,
    data: LeaveTypeUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """Partial update: only fields present in the body are changed"""
    leave_type = leave_type_service.update_leave_type(
        db=db,
        organization_id=current_user.organization_id,
        leave_type_id=leave_type_id,
        data=data,
        actor_id=current_user.id,
    )
    return LeaveTypeOut.model_validate(leave_type)


@router.delete("/{leave_type_id}", response_model=LeaveTypeOut)
async def delete_leave_type_endpoint(
    leave_type_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """Soft delete; existing requests and balances keep referencing the row"""
    leave_type = leave_type_service.delete_leave_type(
        db=db,
        organization_id=current_user.organization_id,
        leave_type_id=leave_type_id,
        actor_id=current_user.id,
    )
    return LeaveTypeOut.model_validate(leave_type)
