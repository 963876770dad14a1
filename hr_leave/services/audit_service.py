"""
Audit logging service
"""
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from hr_leave.models.audit_log import AuditLog
from hr_leave.utils.datetime_utils import now_utc
from hr_leave.utils.json_serializer import sanitize_for_json


def log_audit(
    db: Session,
    actor_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None,
    organization_id: Optional[int] = None,
) -> AuditLog:
    """
    Create an audit log entry and commit it.

    Call after the audited change has been committed so a failed audit write
    never rolls back business data.

    Args:
        db: Database session
        actor_id: ID of the user performing the action (None for scheduled jobs)
        action: Action type (e.g., "LEAVE_APPROVE", "ACCRUAL_RUN")
        entity_type: Type of entity (e.g., "leave_requests", "leave_types")
        entity_id: ID of the affected entity (optional)
        meta: Additional metadata as dictionary (optional)
        organization_id: Organization scope of the action (optional)
    """
    audit_log = AuditLog(
        organization_id=organization_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=sanitize_for_json(meta) if meta is not None else None,
        created_at=now_utc(),
    )
    db.add(audit_log)
    db.commit()
    db.refresh(audit_log)
    return audit_log
