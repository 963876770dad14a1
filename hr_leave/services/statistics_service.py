"""
Statistics service - read-only aggregation over leave requests
"""
from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Any
from sqlalchemy.orm import Session
from hr_leave.core.exceptions import ValidationError
from hr_leave.models.department import Department
from hr_leave.models.employee import Employee
from hr_leave.models.leave import LeaveRequest, LeaveStatus, LeaveType
from hr_leave.utils.datetime_utils import ensure_utc


def _decided_at(leave_request: LeaveRequest):
    if leave_request.status == LeaveStatus.APPROVED:
        return leave_request.approved_at
    if leave_request.status == LeaveStatus.REJECTED:
        return leave_request.rejected_at
    return None


def get_leave_statistics(
    db: Session,
    organization_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    department_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    leave_type_id: Optional[int] = None,
    employee_ids: Optional[List[int]] = None,
) -> Dict[str, Any]:
    """
    Aggregate leave requests of an organization.

    Requests are selected by start_date within [date_from, date_to].
    employee_ids restricts the result to a visible set (manager scope).
    An empty selection yields zeros and empty distributions.

    Returns:
        total/pending/approved/rejected/cancelled counts, total_days_requested,
        average_processing_hours (created -> decided, decided requests only),
        leave_type_distribution (by code), department_distribution (by name)
    """
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must be <= date_to")

    query = (
        db.query(LeaveRequest, LeaveType.code, Department.name)
        .join(Employee, LeaveRequest.employee_id == Employee.id)
        .join(LeaveType, LeaveRequest.leave_type_id == LeaveType.id)
        .join(Department, Employee.department_id == Department.id)
        .filter(
            LeaveRequest.organization_id == organization_id,
            LeaveRequest.delete_flag == False,  # noqa: E712
        )
    )
    if date_from:
        query = query.filter(LeaveRequest.start_date >= date_from)
    if date_to:
        query = query.filter(LeaveRequest.start_date <= date_to)
    if department_id:
        query = query.filter(Employee.department_id == department_id)
    if employee_id:
        query = query.filter(LeaveRequest.employee_id == employee_id)
    if leave_type_id:
        query = query.filter(LeaveRequest.leave_type_id == leave_type_id)
    if employee_ids is not None:
        query = query.filter(LeaveRequest.employee_id.in_(employee_ids))

    by_status = Counter()
    by_type = Counter()
    by_department = Counter()
    total_days = Decimal("0")
    processing_hours = []

    for leave_request, leave_type_code, department_name in query.all():
        by_status[LeaveStatus(leave_request.status)] += 1
        by_type[leave_type_code] += 1
        by_department[department_name] += 1
        total_days += Decimal(str(leave_request.total_days))

        decided_at = _decided_at(leave_request)
        if decided_at and leave_request.created_at:
            elapsed = ensure_utc(decided_at) - ensure_utc(leave_request.created_at)
            processing_hours.append(max(elapsed.total_seconds(), 0) / 3600)

    average = round(sum(processing_hours) / len(processing_hours), 2) if processing_hours else None

    return {
        "total_requests": sum(by_status.values()),
        "pending_requests": by_status[LeaveStatus.PENDING],
        "approved_requests": by_status[LeaveStatus.APPROVED],
        "rejected_requests": by_status[LeaveStatus.REJECTED],
        "cancelled_requests": by_status[LeaveStatus.CANCELLED],
        "total_days_requested": float(total_days),
        "average_processing_hours": average,
        "leave_type_distribution": dict(by_type),
        "department_distribution": dict(by_department),
    }
