"""
Leave type service - policy catalog CRUD with field validation
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from hr_leave.core.exceptions import ConflictError, NotFoundError, ValidationError
from hr_leave.models.leave import LeaveType
from hr_leave.schemas.leave_type import LeaveTypeCreate, LeaveTypeUpdate
from hr_leave.services import ledger_service
from hr_leave.services.audit_service import log_audit

logger = logging.getLogger(__name__)

_NON_NEGATIVE_FIELDS = (
    "accrual_rate",
    "carry_forward_limit",
    "carry_forward_expiry_months",
    "encashment_rate",
    "auto_approve_for_days",
    "min_service_months",
    "min_advance_notice_days",
)


def _to_storage(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert schema values to column values (dates in JSON columns are stored as ISO strings)"""
    stored = dict(values)
    if "blackout_dates" in stored and stored["blackout_dates"] is not None:
        stored["blackout_dates"] = sorted({d.isoformat() for d in stored["blackout_dates"]})
    if "required_documents" in stored and stored["required_documents"] is not None:
        stored["required_documents"] = [doc for doc in dict.fromkeys(stored["required_documents"]) if doc]
    return stored


def validate_policy(leave_type: LeaveType) -> None:
    """
    Validate a (possibly merged) leave type record.

    Raises:
        ValidationError: required fields missing, negative numerics, or broken balance bounds
    """
    if not (leave_type.code or "").strip():
        raise ValidationError("code is required")
    if not (leave_type.name or "").strip():
        raise ValidationError("name is required")

    for field in _NON_NEGATIVE_FIELDS:
        value = getattr(leave_type, field)
        if value is not None and value < 0:
            raise ValidationError(f"{field} must be >= 0, got {value}")
    if leave_type.approval_levels is not None and leave_type.approval_levels < 1:
        raise ValidationError("approval_levels must be >= 1")
    if leave_type.max_consecutive_days is not None and leave_type.max_consecutive_days <= 0:
        raise ValidationError("max_consecutive_days must be > 0")

    initial = Decimal(str(leave_type.initial_balance or 0))
    minimum = Decimal(str(leave_type.min_balance or 0))
    if minimum > initial:
        raise ValidationError(f"min_balance ({minimum}) must be <= initial_balance ({initial})")
    if leave_type.max_balance is not None and initial > Decimal(str(leave_type.max_balance)):
        raise ValidationError(f"initial_balance ({initial}) must be <= max_balance ({leave_type.max_balance})")


def _ensure_code_available(
    db: Session,
    organization_id: int,
    code: str,
    exclude_id: Optional[int] = None,
) -> None:
    query = db.query(LeaveType).filter(
        LeaveType.organization_id == organization_id,
        func.upper(LeaveType.code) == code.upper(),
        LeaveType.delete_flag == False,  # noqa: E712
    )
    if exclude_id is not None:
        query = query.filter(LeaveType.id != exclude_id)
    if query.first():
        raise ConflictError(f"Leave type with code '{code}' already exists in this organization")


def create_leave_type(
    db: Session,
    organization_id: int,
    data: LeaveTypeCreate,
    actor_id: Optional[int] = None,
) -> LeaveType:
    """
    Create a leave type for an organization

    Raises:
        ConflictError: If the code already exists in the organization
        ValidationError: If the policy values are inconsistent
    """
    _ensure_code_available(db, organization_id, data.code)

    leave_type = LeaveType(organization_id=organization_id, **_to_storage(data.model_dump()))
    validate_policy(leave_type)
    db.add(leave_type)
    db.commit()
    db.refresh(leave_type)
    logger.info("leave type created: id=%s org=%s code=%s", leave_type.id, organization_id, leave_type.code)

    log_audit(
        db=db,
        actor_id=actor_id,
        action="LEAVE_TYPE_CREATE",
        entity_type="leave_types",
        entity_id=leave_type.id,
        meta={"code": leave_type.code, "name": leave_type.name},
        organization_id=organization_id,
    )
    return leave_type


def get_leave_type(db: Session, organization_id: int, leave_type_id: int) -> LeaveType:
    """Get a non-deleted leave type of the organization or raise NotFoundError"""
    leave_type = db.query(LeaveType).filter(
        LeaveType.id == leave_type_id,
        LeaveType.organization_id == organization_id,
        LeaveType.delete_flag == False,  # noqa: E712
    ).first()
    if not leave_type:
        raise NotFoundError(f"Leave type with id {leave_type_id} not found")
    return leave_type


def list_leave_types(
    db: Session,
    organization_id: int,
    page: int = 1,
    page_size: int = 50,
    active_only: Optional[bool] = None,
    search: Optional[str] = None,
) -> Tuple[List[LeaveType], int]:
    """List leave types of an organization (soft-deleted rows excluded). Returns (items, total)."""
    query = db.query(LeaveType).filter(
        LeaveType.organization_id == organization_id,
        LeaveType.delete_flag == False,  # noqa: E712
    )
    if active_only:
        query = query.filter(LeaveType.active_flag == True)  # noqa: E712
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(LeaveType.name.ilike(pattern), LeaveType.code.ilike(pattern)))

    total = query.count()
    items = (
        query.order_by(LeaveType.name.asc(), LeaveType.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total


def update_leave_type(
    db: Session,
    organization_id: int,
    leave_type_id: int,
    data: LeaveTypeUpdate,
    actor_id: Optional[int] = None,
    today: Optional[date] = None,
) -> LeaveType:
    """
    Apply a partial update and re-validate the merged record.

    Only fields present in the payload are written, so an explicit
    requires_approval=false is stored as false. A changed accrual_method
    reschedules the next accrual of every existing ledger of the type in
    the same transaction.
    """
    leave_type = get_leave_type(db, organization_id, leave_type_id)
    changes = _to_storage(data.model_dump(exclude_unset=True))

    nullable_columns = {"description", "color", "icon", "category", "max_balance", "carry_forward_limit",
                        "carry_forward_expiry_months", "encashment_rate", "auto_approve_for_days",
                        "max_consecutive_days"}
    for field, value in changes.items():
        if value is None and field not in nullable_columns:
            raise ValidationError(f"{field} cannot be null")

    if "code" in changes and changes["code"].upper() != leave_type.code.upper():
        _ensure_code_available(db, organization_id, changes["code"], exclude_id=leave_type.id)

    method_changed = "accrual_method" in changes and changes["accrual_method"] != leave_type.accrual_method

    for field, value in changes.items():
        setattr(leave_type, field, value)

    try:
        validate_policy(leave_type)
        if method_changed:
            ledger_service.reschedule_accruals(db, leave_type, today=today)
    except Exception:
        db.rollback()
        raise

    db.commit()
    db.refresh(leave_type)
    logger.info("leave type updated: id=%s fields=%s", leave_type.id, sorted(changes))

    log_audit(
        db=db,
        actor_id=actor_id,
        action="LEAVE_TYPE_UPDATE",
        entity_type="leave_types",
        entity_id=leave_type.id,
        meta={"changes": changes},
        organization_id=organization_id,
    )
    return leave_type


def delete_leave_type(
    db: Session,
    organization_id: int,
    leave_type_id: int,
    actor_id: Optional[int] = None,
) -> LeaveType:
    """Soft delete: the row stays for existing requests and ledgers"""
    leave_type = get_leave_type(db, organization_id, leave_type_id)
    leave_type.delete_flag = True
    leave_type.active_flag = False
    db.commit()
    db.refresh(leave_type)
    logger.info("leave type soft-deleted: id=%s", leave_type.id)

    log_audit(
        db=db,
        actor_id=actor_id,
        action="LEAVE_TYPE_DELETE",
        entity_type="leave_types",
        entity_id=leave_type.id,
        meta={"code": leave_type.code},
        organization_id=organization_id,
    )
    return leave_type
