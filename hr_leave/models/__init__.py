"""
Database models
"""
from hr_leave.models.organization import Organization
from hr_leave.models.department import Department
from hr_leave.models.employee import Employee, Role
from hr_leave.models.audit_log import AuditLog
from hr_leave.models.leave import (
    LeaveType,
    EmployeeLeaveBalance,
    LeaveRequest,
    LeaveApproval,
    LeaveTransaction,
    AccrualMethod,
    ACCRUAL_PERIOD_MONTHS,
    LeaveCategory,
    LeaveStatus,
    ALLOWED_TRANSITIONS,
    ApprovalAction,
    LeaveTransactionAction,
)

__all__ = [
    "Organization",
    "Department",
    "Employee",
    "Role",
    "AuditLog",
    "LeaveType",
    "EmployeeLeaveBalance",
    "LeaveRequest",
    "LeaveApproval",
    "LeaveTransaction",
    "AccrualMethod",
    "ACCRUAL_PERIOD_MONTHS",
    "LeaveCategory",
    "LeaveStatus",
    "ALLOWED_TRANSITIONS",
    "ApprovalAction",
    "LeaveTransactionAction",
]
