"""
Leave request workflow: submit / edit / withdraw, approve / reject / cancel and bulk decisions.

State machine (ALLOWED_TRANSITIONS):
    PENDING  -> APPROVED | REJECTED | CANCELLED
    APPROVED -> CANCELLED (credit-back)
    REJECTED, CANCELLED: final

Only PENDING requests can be edited or withdrawn (soft delete via delete_flag).

Ledger debit / credit-back and the status change are committed together in one
transaction (ledger_service.run_with_retry); a rejected debit leaves both the
request and the ledger untouched.
"""
import logging
from collections import deque
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from hr_leave.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    LeaveServiceError,
    NotFoundError,
    PermissionDeniedError,
    PolicyViolationError,
    ValidationError,
)
from hr_leave.models.employee import Employee, Role
from hr_leave.models.leave import (
    ALLOWED_TRANSITIONS,
    ApprovalAction,
    LeaveApproval,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from hr_leave.schemas.leave_request import LeaveSubmitRequest, LeaveUpdateRequest
from hr_leave.services import ledger_service
from hr_leave.services.audit_service import log_audit
from hr_leave.utils.datetime_utils import months_between, now_utc

logger = logging.getLogger(__name__)

HALF_DAY = Decimal("0.5")

# Roles that may decide any request of their organization
ORG_WIDE_APPROVER_ROLES = (Role.ADMIN.value, Role.HR.value)


def calculate_total_days(start_date: date, end_date: date, is_half_day: bool = False) -> Decimal:
    """Inclusive calendar days between start and end; 0.5 for a half day"""
    if is_half_day:
        return HALF_DAY
    return Decimal((end_date - start_date).days + 1)


def get_subordinate_ids(db: Session, manager_id: int) -> List[int]:
    """
    All direct and indirect reportees of a manager (breadth-first over reporting_manager_id).

    Args:
        db: Database session
        manager_id: ID of the manager

    Returns:
        List of employee IDs in the manager's reporting tree
    """
    subordinate_ids = []
    seen = {manager_id}
    queue = deque([manager_id])

    while queue:
        current_manager_id = queue.popleft()
        direct_reports = db.query(Employee.id).filter(
            Employee.reporting_manager_id == current_manager_id,
            Employee.active == True,  # noqa: E712
        ).all()
        for (employee_id,) in direct_reports:
            # Guard against reporting cycles
            if employee_id in seen:
                continue
            seen.add(employee_id)
            subordinate_ids.append(employee_id)
            queue.append(employee_id)

    return subordinate_ids


def can_decide(db: Session, leave_request: LeaveRequest, actor: Employee) -> bool:
    """Whether actor may approve / reject the request"""
    if actor.organization_id != leave_request.organization_id:
        return False
    if actor.id == leave_request.employee_id:
        return False
    if actor.role in ORG_WIDE_APPROVER_ROLES:
        return True
    if actor.role == Role.MANAGER.value:
        return leave_request.employee_id in get_subordinate_ids(db, actor.id)
    return False


def validate_approval_authority(db: Session, leave_request: LeaveRequest, actor: Employee) -> None:
    """
    Raises:
        PermissionDeniedError: actor is not ADMIN/HR of the organization, nor a manager
            of the requester, or is deciding their own request
    """
    if actor.id == leave_request.employee_id:
        raise PermissionDeniedError("You cannot approve or reject your own leave request")
    if not can_decide(db, leave_request, actor):
        raise PermissionDeniedError(
            f"Employee {actor.emp_code} is not authorized to decide leave request {leave_request.id}"
        )


def _ensure_transition(leave_request: LeaveRequest, target: LeaveStatus, action: str) -> None:
    current = LeaveStatus(leave_request.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, action)


def validate_overlap(
    db: Session,
    employee_id: int,
    start_date: date,
    end_date: date,
    exclude_leave_request_id: Optional[int] = None,
) -> None:
    """
    Raises:
        ConflictError: the range overlaps a PENDING or APPROVED request of the employee
    """
    query = db.query(LeaveRequest).filter(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status.in_([LeaveStatus.PENDING, LeaveStatus.APPROVED]),
        LeaveRequest.delete_flag == False,  # noqa: E712
        LeaveRequest.end_date >= start_date,
        LeaveRequest.start_date <= end_date,
    )
    if exclude_leave_request_id:
        query = query.filter(LeaveRequest.id != exclude_leave_request_id)

    overlapping = query.first()
    if overlapping:
        raise ConflictError(
            f"Leave request overlaps with existing leave from {overlapping.start_date} to {overlapping.end_date}"
        )


def validate_policy_preconditions(
    db: Session,
    employee: Employee,
    leave_type: LeaveType,
    data: LeaveSubmitRequest,
    total_days: Decimal,
    today: date,
) -> None:
    """
    Eligibility checks at submission. Each failure names the violated limit.

    Raises:
        PolicyViolationError
    """
    notice_days = (data.start_date - today).days
    if leave_type.min_advance_notice_days and notice_days < leave_type.min_advance_notice_days:
        raise PolicyViolationError(
            f"{leave_type.code} requires {leave_type.min_advance_notice_days} days advance notice, "
            f"request starts in {notice_days} days"
        )

    if leave_type.min_service_months:
        service_months = months_between(employee.join_date, today) if employee.join_date else 0
        if service_months < leave_type.min_service_months:
            raise PolicyViolationError(
                f"{leave_type.code} requires {leave_type.min_service_months} months of service, "
                f"employee has {max(service_months, 0)}"
            )

    if leave_type.max_consecutive_days is not None and total_days > Decimal(str(leave_type.max_consecutive_days)):
        raise PolicyViolationError(
            f"requested {total_days.normalize():f} days exceeds maximum of "
            f"{Decimal(str(leave_type.max_consecutive_days)).normalize():f} consecutive days for {leave_type.code}"
        )

    if data.start_date.isoformat() in (leave_type.blackout_dates or []):
        raise PolicyViolationError(f"{data.start_date.isoformat()} is a blackout date for {leave_type.code}")

    if leave_type.requires_documentation and leave_type.required_documents:
        provided = {attachment.document_kind.upper() for attachment in data.attachments}
        missing = [doc for doc in leave_type.required_documents if doc.upper() not in provided]
        if missing:
            raise PolicyViolationError(
                f"{leave_type.code} requires documents: {', '.join(missing)}"
            )

    # Soft check: current balance only, pending requests are not reserved
    ledger = ledger_service.ensure_ledger(db, employee, leave_type, opened_on=today)
    balance = Decimal(str(ledger.balance))
    minimum = Decimal(str(leave_type.min_balance or 0))
    if balance - total_days < minimum:
        detail = (
            f"requested {total_days.normalize():f} days, "
            f"available balance {balance.normalize():f}"
        )
        if minimum:
            detail += f" (minimum balance {minimum.normalize():f})"
        raise PolicyViolationError(detail)


def should_auto_approve(leave_type: LeaveType, total_days: Decimal) -> bool:
    if not leave_type.requires_approval:
        return True
    if leave_type.auto_approve_for_days is not None:
        return total_days <= Decimal(str(leave_type.auto_approve_for_days))
    return False


def _check_submission(
    db: Session,
    employee: Employee,
    data: LeaveSubmitRequest,
    today: date,
    exclude_leave_request_id: Optional[int] = None,
) -> Tuple[LeaveType, Decimal]:
    """Shape, leave type, handover, overlap and policy checks"""
    if data.end_date < data.start_date:
        raise ValidationError("end_date must be on or after start_date")
    if data.is_half_day and data.start_date != data.end_date:
        raise ValidationError("A half day leave must start and end on the same date")

    leave_type = db.query(LeaveType).filter(
        LeaveType.id == data.leave_type_id,
        LeaveType.organization_id == employee.organization_id,
        LeaveType.delete_flag == False,  # noqa: E712
    ).first()
    if not leave_type or not leave_type.active_flag:
        raise NotFoundError(f"Leave type with id {data.leave_type_id} not found")

    if data.work_handover_to is not None:
        if data.work_handover_to == employee.id:
            raise ValidationError("work_handover_to cannot be the requesting employee")
        handover = db.query(Employee).filter(
            Employee.id == data.work_handover_to,
            Employee.organization_id == employee.organization_id,
            Employee.active == True,  # noqa: E712
        ).first()
        if not handover:
            raise ValidationError(f"work_handover_to employee {data.work_handover_to} not found")

    total_days = calculate_total_days(data.start_date, data.end_date, data.is_half_day)

    try:
        validate_overlap(db, employee.id, data.start_date, data.end_date, exclude_leave_request_id)
        validate_policy_preconditions(db, employee, leave_type, data, total_days, today)
    except LeaveServiceError:
        db.rollback()
        raise
    return leave_type, total_days


def _approve_by_policy(db: Session, leave_request: LeaveRequest, today: date) -> None:
    ledger_service.debit_for_request(db, leave_request, actor_id=None, today=today)
    leave_request.status = LeaveStatus.APPROVED
    leave_request.approved_at = now_utc()
    leave_request.approver_comments = "Auto-approved by leave policy"
    db.add(LeaveApproval(
        leave_request_id=leave_request.id,
        action_by=None,
        action=ApprovalAction.AUTO_APPROVE,
        level=1,
        comments="Auto-approved by leave policy",
        action_at=now_utc(),
    ))


def submit_leave_request(
    db: Session,
    employee: Employee,
    data: LeaveSubmitRequest,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    Create a leave request for employee.

    Auto-approved requests are created APPROVED and debited in the same
    transaction. Nothing is persisted when a check fails.

    Raises:
        ValidationError: end before start, half day spanning several days, bad handover employee
        NotFoundError: leave type missing, deleted or inactive
        ConflictError: overlaps a PENDING/APPROVED request
        PolicyViolationError: an eligibility precondition failed
        InsufficientBalanceError: auto-approval debit rejected by the ledger
    """
    today = today or date.today()
    leave_type, total_days = _check_submission(db, employee, data, today)
    auto_approve = should_auto_approve(leave_type, total_days)

    def unit():
        leave_request = LeaveRequest(
            organization_id=employee.organization_id,
            employee=employee,
            leave_type=leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            is_half_day=data.is_half_day,
            status=LeaveStatus.PENDING,
            debited_days=Decimal("0"),
            reason=data.reason,
            comments=data.comments,
            work_handover_to=data.work_handover_to,
            handover_notes=data.handover_notes,
            emergency_contact_name=data.emergency_contact_name,
            emergency_contact_phone=data.emergency_contact_phone,
            attachments=[attachment.model_dump() for attachment in data.attachments],
        )
        db.add(leave_request)
        db.flush()
        if auto_approve:
            _approve_by_policy(db, leave_request, today)
        return leave_request

    leave_request = ledger_service.run_with_retry(db, unit)
    db.refresh(leave_request)

    logger.info(
        "leave submitted: leave_request_id=%s employee_id=%s leave_type=%s days=%s status=%s",
        leave_request.id, employee.id, leave_type.code, total_days, leave_request.status.value,
    )
    if auto_approve:
        logger.info(
            "leave status transition: leave_request_id=%s before=PENDING after=APPROVED action=auto_approve",
            leave_request.id,
        )

    log_audit(
        db=db,
        actor_id=employee.id,
        action="LEAVE_AUTO_APPROVE" if auto_approve else "LEAVE_SUBMIT",
        entity_type="leave_requests",
        entity_id=leave_request.id,
        meta={
            "leave_type": leave_type.code,
            "start_date": data.start_date,
            "end_date": data.end_date,
            "total_days": total_days,
            "status": leave_request.status,
        },
        organization_id=employee.organization_id,
    )
    return leave_request


def _load_request(db: Session, organization_id: int, leave_request_id: int) -> LeaveRequest:
    leave_request = (
        db.query(LeaveRequest)
        .filter(
            LeaveRequest.id == leave_request_id,
            LeaveRequest.organization_id == organization_id,
            LeaveRequest.delete_flag == False,  # noqa: E712
        )
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not leave_request:
        raise NotFoundError(f"Leave request with id {leave_request_id} not found")
    return leave_request


def approve_leave_request(
    db: Session,
    leave_request_id: int,
    approver: Employee,
    comments: Optional[str] = None,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    PENDING -> APPROVED with ledger debit.

    Raises:
        NotFoundError, InvalidTransitionError, PermissionDeniedError,
        InsufficientBalanceError (request stays PENDING, ledger unchanged)
    """
    organization_id = approver.organization_id
    approver_id = approver.id

    def unit():
        leave_request = _load_request(db, organization_id, leave_request_id)
        _ensure_transition(leave_request, LeaveStatus.APPROVED, "approve")
        validate_approval_authority(db, leave_request, approver)

        ledger_service.debit_for_request(db, leave_request, actor_id=approver_id, today=today)
        leave_request.status = LeaveStatus.APPROVED
        leave_request.approved_by_id = approver_id
        leave_request.approved_at = now_utc()
        leave_request.approver_comments = comments
        db.add(LeaveApproval(
            leave_request_id=leave_request.id,
            action_by=approver_id,
            action=ApprovalAction.APPROVE,
            level=1,
            comments=comments,
            action_at=now_utc(),
        ))
        return leave_request

    leave_request = ledger_service.run_with_retry(db, unit)
    db.refresh(leave_request)
    logger.info(
        "leave status transition: leave_request_id=%s before=PENDING after=APPROVED action=approve",
        leave_request.id,
    )

    log_audit(
        db=db,
        actor_id=approver_id,
        action="LEAVE_APPROVE",
        entity_type="leave_requests",
        entity_id=leave_request.id,
        meta={
            "employee_id": leave_request.employee_id,
            "leave_type_id": leave_request.leave_type_id,
            "debited_days": leave_request.debited_days,
            "comments": comments,
        },
        organization_id=organization_id,
    )
    return leave_request


def reject_leave_request(
    db: Session,
    leave_request_id: int,
    approver: Employee,
    comments: Optional[str] = None,
) -> LeaveRequest:
    """PENDING -> REJECTED. No ledger effect."""
    organization_id = approver.organization_id
    leave_request = _load_request(db, organization_id, leave_request_id)
    try:
        _ensure_transition(leave_request, LeaveStatus.REJECTED, "reject")
        validate_approval_authority(db, leave_request, approver)
    except LeaveServiceError:
        db.rollback()
        raise

    leave_request.status = LeaveStatus.REJECTED
    leave_request.rejected_by_id = approver.id
    leave_request.rejected_at = now_utc()
    leave_request.approver_comments = comments
    db.add(LeaveApproval(
        leave_request_id=leave_request.id,
        action_by=approver.id,
        action=ApprovalAction.REJECT,
        level=1,
        comments=comments,
        action_at=now_utc(),
    ))
    db.commit()
    db.refresh(leave_request)
    logger.info(
        "leave status transition: leave_request_id=%s before=PENDING after=REJECTED action=reject",
        leave_request.id,
    )

    log_audit(
        db=db,
        actor_id=approver.id,
        action="LEAVE_REJECT",
        entity_type="leave_requests",
        entity_id=leave_request.id,
        meta={"employee_id": leave_request.employee_id, "comments": comments},
        organization_id=organization_id,
    )
    return leave_request


def cancel_leave_request(
    db: Session,
    leave_request_id: int,
    actor: Employee,
    comments: Optional[str] = None,
) -> LeaveRequest:
    """
    PENDING -> CANCELLED, or APPROVED -> CANCELLED with credit-back of exactly the
    debited days. The owner or an authorized approver may cancel.
    """
    organization_id = actor.organization_id
    actor_id = actor.id
    before: Dict[str, Any] = {}

    def unit():
        leave_request = _load_request(db, organization_id, leave_request_id)
        _ensure_transition(leave_request, LeaveStatus.CANCELLED, "cancel")
        if leave_request.employee_id != actor_id and not can_decide(db, leave_request, actor):
            raise PermissionDeniedError(
                f"Employee {actor.emp_code} is not authorized to cancel leave request {leave_request.id}"
            )

        before["status"] = LeaveStatus(leave_request.status)
        credited = Decimal("0")
        if before["status"] == LeaveStatus.APPROVED:
            credited = ledger_service.credit_back_for_request(db, leave_request, actor_id=actor_id)
        before["credited"] = credited

        leave_request.status = LeaveStatus.CANCELLED
        leave_request.cancelled_by_id = actor_id
        leave_request.cancelled_at = now_utc()
        if comments:
            leave_request.approver_comments = comments
        db.add(LeaveApproval(
            leave_request_id=leave_request.id,
            action_by=actor_id,
            action=ApprovalAction.CANCEL,
            level=1,
            comments=comments,
            action_at=now_utc(),
        ))
        return leave_request

    leave_request = ledger_service.run_with_retry(db, unit)
    db.refresh(leave_request)
    logger.info(
        "leave status transition: leave_request_id=%s before=%s after=CANCELLED action=cancel",
        leave_request.id, before["status"].value,
    )

    log_audit(
        db=db,
        actor_id=actor_id,
        action="LEAVE_CANCEL",
        entity_type="leave_requests",
        entity_id=leave_request.id,
        meta={
            "employee_id": leave_request.employee_id,
            "previous_status": before["status"],
            "credited_back_days": before["credited"],
            "comments": comments,
        },
        organization_id=organization_id,
    )
    return leave_request


_EDITABLE_FIELDS = (
    "leave_type_id", "start_date", "end_date", "is_half_day", "reason", "comments",
    "work_handover_to", "handover_notes", "emergency_contact_name", "emergency_contact_phone",
    "attachments",
)
_REQUIRED_FIELDS = ("leave_type_id", "start_date", "end_date", "is_half_day", "attachments")


def _ensure_pending(leave_request: LeaveRequest, action: str) -> None:
    current = LeaveStatus(leave_request.status)
    if current != LeaveStatus.PENDING:
        raise InvalidTransitionError(current, action)


def update_leave_request(
    db: Session,
    leave_request_id: int,
    actor: Employee,
    data: LeaveUpdateRequest,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    Edit a PENDING request of the actor.

    The merged request goes through the same checks as a submission (its own
    dates are excluded from the overlap check) and is auto-approved when the
    edited request qualifies.

    Raises:
        NotFoundError, PermissionDeniedError (not the owner),
        InvalidTransitionError (not PENDING), plus every submission error
    """
    today = today or date.today()
    organization_id = actor.organization_id
    changes = data.model_dump(exclude_unset=True)

    leave_request = _load_request(db, organization_id, leave_request_id)
    try:
        if leave_request.employee_id != actor.id:
            raise PermissionDeniedError(
                f"Employee {actor.emp_code} cannot edit leave request {leave_request.id} of another employee"
            )
        _ensure_pending(leave_request, "update")
        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")
    except LeaveServiceError:
        db.rollback()
        raise

    values = {field: getattr(leave_request, field) for field in _EDITABLE_FIELDS}
    values["attachments"] = list(values["attachments"] or [])
    values.update(changes)
    merged = LeaveSubmitRequest.model_validate(values)

    try:
        leave_type, total_days = _check_submission(db, actor, merged, today, exclude_leave_request_id=leave_request_id)
    except LeaveServiceError:
        db.rollback()
        raise
    auto_approve = should_auto_approve(leave_type, total_days)

    def unit():
        leave_request = _load_request(db, organization_id, leave_request_id)
        _ensure_pending(leave_request, "update")
        for field in _EDITABLE_FIELDS:
            if field != "attachments":
                setattr(leave_request, field, getattr(merged, field))
        leave_request.leave_type = leave_type
        leave_request.attachments = [attachment.model_dump() for attachment in merged.attachments]
        leave_request.total_days = total_days
        db.flush()
        if auto_approve:
            _approve_by_policy(db, leave_request, today)
        return leave_request

    leave_request = ledger_service.run_with_retry(db, unit)
    db.refresh(leave_request)
    logger.info(
        "leave updated: leave_request_id=%s fields=%s days=%s status=%s",
        leave_request.id, sorted(changes), total_days, leave_request.status.value,
    )

    log_audit(
        db=db,
        actor_id=actor.id,
        action="LEAVE_AUTO_APPROVE" if auto_approve else "LEAVE_UPDATE",
        entity_type="leave_requests",
        entity_id=leave_request.id,
        meta={
            "changes": changes,
            "leave_type": leave_type.code,
            "total_days": total_days,
            "status": leave_request.status,
        },
        organization_id=organization_id,
    )
    return leave_request


def delete_leave_request(db: Session, leave_request_id: int, actor: Employee) -> LeaveRequest:
    """
    Withdraw a PENDING request (soft delete). The owner or an authorized
    approver may delete; deleted requests drop out of listings, overlap
    checks and statistics.
    """
    organization_id = actor.organization_id
    leave_request = _load_request(db, organization_id, leave_request_id)
    try:
        if leave_request.employee_id != actor.id and not can_decide(db, leave_request, actor):
            raise PermissionDeniedError(
                f"Employee {actor.emp_code} is not authorized to delete leave request {leave_request.id}"
            )
        _ensure_pending(leave_request, "delete")
    except LeaveServiceError:
        db.rollback()
        raise

    leave_request.delete_flag = True
    db.commit()
    db.refresh(leave_request)
    logger.info("leave deleted: leave_request_id=%s by employee_id=%s", leave_request.id, actor.id)

    log_audit(
        db=db,
        actor_id=actor.id,
        action="LEAVE_DELETE",
        entity_type="leave_requests",
        entity_id=leave_request.id,
        meta={"employee_id": leave_request.employee_id, "start_date": leave_request.start_date},
        organization_id=organization_id,
    )
    return leave_request


def _bulk_decide(db: Session, leave_request_ids: List[int], decide) -> Dict[str, Any]:
    results = []
    for leave_request_id in leave_request_ids:
        try:
            leave_request = decide(leave_request_id)
        except LeaveServiceError as exc:
            db.rollback()
            results.append({
                "leave_request_id": leave_request_id,
                "success": False,
                "status": _current_status(db, leave_request_id),
                "error_code": exc.error_code,
                "detail": exc.detail,
            })
            continue
        results.append({
            "leave_request_id": leave_request_id,
            "success": True,
            "status": leave_request.status,
            "error_code": None,
            "detail": None,
        })

    succeeded = sum(1 for result in results if result["success"])
    return {
        "total": len(results),
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "results": results,
    }


def _current_status(db: Session, leave_request_id: int) -> Optional[LeaveStatus]:
    row = db.query(LeaveRequest.status).filter(LeaveRequest.id == leave_request_id).first()
    return row[0] if row else None


def bulk_approve(
    db: Session,
    leave_request_ids: List[int],
    approver: Employee,
    comments: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Approve each request in its own transaction; failures are reported per item"""
    summary = _bulk_decide(
        db,
        leave_request_ids,
        lambda leave_request_id: approve_leave_request(db, leave_request_id, approver, comments, today=today),
    )
    logger.info(
        "bulk approve: approver_id=%s total=%s succeeded=%s failed=%s",
        approver.id, summary["total"], summary["succeeded"], summary["failed"],
    )
    return summary


def bulk_reject(
    db: Session,
    leave_request_ids: List[int],
    approver: Employee,
    comments: Optional[str] = None,
) -> Dict[str, Any]:
    """Reject each request in its own transaction; failures are reported per item"""
    summary = _bulk_decide(
        db,
        leave_request_ids,
        lambda leave_request_id: reject_leave_request(db, leave_request_id, approver, comments),
    )
    logger.info(
        "bulk reject: approver_id=%s total=%s succeeded=%s failed=%s",
        approver.id, summary["total"], summary["succeeded"], summary["failed"],
    )
    return summary


def visible_employee_ids(db: Session, current_user: Employee) -> Optional[List[int]]:
    """Employees whose requests current_user may see; None means the whole organization"""
    if current_user.role in ORG_WIDE_APPROVER_ROLES:
        return None
    if current_user.role == Role.MANAGER.value:
        return [current_user.id] + get_subordinate_ids(db, current_user.id)
    return [current_user.id]


def get_leave_request(db: Session, current_user: Employee, leave_request_id: int) -> LeaveRequest:
    """Get a request visible to current_user; invisible requests are reported as not found"""
    leave_request = (
        db.query(LeaveRequest)
        .options(joinedload(LeaveRequest.employee), joinedload(LeaveRequest.leave_type))
        .filter(
            LeaveRequest.id == leave_request_id,
            LeaveRequest.organization_id == current_user.organization_id,
            LeaveRequest.delete_flag == False,  # noqa: E712
        )
        .first()
    )
    visible = visible_employee_ids(db, current_user)
    if not leave_request or (visible is not None and leave_request.employee_id not in visible):
        raise NotFoundError(f"Leave request with id {leave_request_id} not found")
    return leave_request


def list_leave_requests(
    db: Session,
    current_user: Employee,
    status: Optional[LeaveStatus] = None,
    leave_type_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    department_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    is_half_day: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[LeaveRequest], int]:
    """
    List leave requests with role-based scoping.

    ADMIN/HR see the whole organization, managers their reporting tree plus
    themselves, employees their own requests. Date filters select requests
    overlapping [date_from, date_to]. Returns (items, total).
    """
    query = (
        db.query(LeaveRequest)
        .join(Employee, LeaveRequest.employee_id == Employee.id)
        .options(joinedload(LeaveRequest.employee), joinedload(LeaveRequest.leave_type))
        .filter(
            LeaveRequest.organization_id == current_user.organization_id,
            LeaveRequest.delete_flag == False,  # noqa: E712
        )
    )

    visible = visible_employee_ids(db, current_user)
    if visible is not None:
        query = query.filter(LeaveRequest.employee_id.in_(visible))

    if status:
        query = query.filter(LeaveRequest.status == status)
    if leave_type_id:
        query = query.filter(LeaveRequest.leave_type_id == leave_type_id)
    if employee_id:
        query = query.filter(LeaveRequest.employee_id == employee_id)
    if department_id:
        query = query.filter(Employee.department_id == department_id)
    if date_from:
        query = query.filter(LeaveRequest.end_date >= date_from)
    if date_to:
        query = query.filter(LeaveRequest.start_date <= date_to)
    if is_half_day is not None:
        query = query.filter(LeaveRequest.is_half_day == is_half_day)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Employee.name.ilike(pattern), Employee.emp_code.ilike(pattern)))

    total = query.count()
    items = (
        query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total
