"""
Leave models: policy (leave_types), ledger (employee_leaves), requests and journal
"""
from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    Numeric,
    Enum as SQLEnum,
    Boolean,
    JSON,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import text
import enum
from hr_leave.db.base import Base
from hr_leave.utils.datetime_utils import now_utc


class AccrualMethod(str, enum.Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    NONE = "NONE"


# Months per accrual period; NONE never accrues
ACCRUAL_PERIOD_MONTHS = {
    AccrualMethod.MONTHLY: 1,
    AccrualMethod.QUARTERLY: 3,
    AccrualMethod.YEARLY: 12,
}


class LeaveCategory(str, enum.Enum):
    PAID = "PAID"
    UNPAID = "UNPAID"
    SICK = "SICK"
    CASUAL = "CASUAL"
    PARENTAL = "PARENTAL"
    COMPENSATORY = "COMPENSATORY"
    OTHER = "OTHER"


class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# status -> statuses reachable from it. REJECTED and CANCELLED are final.
ALLOWED_TRANSITIONS = {
    LeaveStatus.PENDING: frozenset({LeaveStatus.APPROVED, LeaveStatus.REJECTED, LeaveStatus.CANCELLED}),
    LeaveStatus.APPROVED: frozenset({LeaveStatus.CANCELLED}),
    LeaveStatus.REJECTED: frozenset(),
    LeaveStatus.CANCELLED: frozenset(),
}


class ApprovalAction(str, enum.Enum):
    AUTO_APPROVE = "AUTO_APPROVE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"


class LeaveTransactionAction(str, enum.Enum):
    OPENING = "OPENING"
    ACCRUAL = "ACCRUAL"
    APPROVE_DEDUCT = "APPROVE_DEDUCT"
    CANCEL_RECREDIT = "CANCEL_RECREDIT"
    MANUAL_ADJUST = "MANUAL_ADJUST"
    YEAR_CLOSE_FORFEIT = "YEAR_CLOSE_FORFEIT"
    YEAR_CLOSE_ENCASH = "YEAR_CLOSE_ENCASH"
    CARRY_FORWARD_EXPIRY = "CARRY_FORWARD_EXPIRY"


class LeaveType(Base):
    """
    Leave policy for one organization.

    Balance bounds: min_balance <= initial_balance <= max_balance (when max_balance is set).
    code is unique per organization among rows that are not soft-deleted.
    """
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    code = Column(String(32), nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(16), nullable=True)
    icon = Column(String(64), nullable=True)
    category = Column(SQLEnum(LeaveCategory), nullable=True)

    accrual_method = Column(SQLEnum(AccrualMethod), nullable=False, default=AccrualMethod.NONE)
    accrual_rate = Column(Numeric(6, 2), nullable=False, default=0)

    initial_balance = Column(Numeric(6, 2), nullable=False, default=0)
    min_balance = Column(Numeric(6, 2), nullable=False, default=0)
    max_balance = Column(Numeric(6, 2), nullable=True)

    allow_carry_forward = Column(Boolean, nullable=False, default=False)
    carry_forward_limit = Column(Numeric(6, 2), nullable=True)
    carry_forward_expiry_months = Column(Integer, nullable=True)

    allow_encashment = Column(Boolean, nullable=False, default=False)
    encashment_rate = Column(Numeric(10, 2), nullable=True)

    requires_approval = Column(Boolean, nullable=False, default=True)
    approval_levels = Column(Integer, nullable=False, default=1)
    auto_approve_for_days = Column(Numeric(6, 2), nullable=True)
    requires_documentation = Column(Boolean, nullable=False, default=False)
    required_documents = Column(JSON, nullable=False, default=list)

    min_service_months = Column(Integer, nullable=False, default=0)
    min_advance_notice_days = Column(Integer, nullable=False, default=0)
    max_consecutive_days = Column(Numeric(6, 2), nullable=True)
    blackout_dates = Column(JSON, nullable=False, default=list)  # ISO date strings

    active_flag = Column(Boolean, nullable=False, default=True)
    delete_flag = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_leave_types_org_code", "organization_id", "code"),
        CheckConstraint("accrual_rate >= 0", name="check_leave_types_accrual_rate_non_negative"),
        CheckConstraint("approval_levels >= 1", name="check_leave_types_approval_levels_positive"),
    )


class EmployeeLeaveBalance(Base):
    """
    Ledger row: one per (employee, leave type).

    balance is not required to equal total_accrued - total_consumed; year-close
    forfeiture, carry-forward expiry and manual adjustments move balance only.
    carry_forward_balance is the part of balance carried over at the last rollover
    that has not been consumed yet (debits consume carried days first).
    """
    __tablename__ = "employee_leaves"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    balance = Column(Numeric(6, 2), nullable=False, default=0)
    total_accrued = Column(Numeric(8, 2), nullable=False, default=0)
    total_consumed = Column(Numeric(8, 2), nullable=False, default=0)
    opened_on = Column(Date, nullable=True)
    last_accrual_date = Column(Date, nullable=True)
    next_accrual_date = Column(Date, nullable=True)
    carry_forward_balance = Column(Numeric(6, 2), nullable=False, default=0)
    carry_forward_expires_on = Column(Date, nullable=True)
    last_rollover_year = Column(Integer, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    active_flag = Column(Boolean, nullable=False, default=True)
    delete_flag = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    employee = relationship("Employee", backref="leave_balances")
    leave_type = relationship("LeaveType")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", name="uq_employee_leaves_employee_type"),
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Numeric(6, 2), nullable=False)  # 0.5 for a half day
    is_half_day = Column(Boolean, nullable=False, default=False)
    status = Column(SQLEnum(LeaveStatus), nullable=False, default=LeaveStatus.PENDING)
    # Days actually taken from the ledger on approval; credit-back restores exactly this amount
    debited_days = Column(Numeric(6, 2), nullable=False, default=0)

    reason = Column(Text, nullable=True)
    comments = Column(Text, nullable=True)
    approver_comments = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)

    work_handover_to = Column(Integer, ForeignKey("employees.id"), nullable=True)
    handover_notes = Column(Text, nullable=True)
    emergency_contact_name = Column(String, nullable=True)
    emergency_contact_phone = Column(String, nullable=True)
    attachments = Column(JSON, nullable=False, default=list)  # [{"document_kind", "name", "url"}]

    active_flag = Column(Boolean, nullable=False, default=True)
    delete_flag = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    employee = relationship("Employee", foreign_keys=[employee_id], back_populates="leave_requests")
    leave_type = relationship("LeaveType")
    approved_by = relationship("Employee", foreign_keys=[approved_by_id])
    rejected_by = relationship("Employee", foreign_keys=[rejected_by_id])
    cancelled_by = relationship("Employee", foreign_keys=[cancelled_by_id])
    approvals = relationship(
        "LeaveApproval",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveApproval.id",
    )

    __table_args__ = (
        Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        CheckConstraint("start_date <= end_date", name="check_start_date_le_end_date"),
    )


class LeaveApproval(Base):
    """Append-only decision history of a leave request"""
    __tablename__ = "leave_approvals"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=False, index=True)
    action_by = Column(Integer, ForeignKey("employees.id"), nullable=True)  # None for policy auto-approval
    action = Column(SQLEnum(ApprovalAction), nullable=False)
    level = Column(Integer, nullable=False, default=1)
    comments = Column(Text, nullable=True)
    action_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    leave_request = relationship("LeaveRequest", back_populates="approvals")
    actor = relationship("Employee", foreign_keys=[action_by])


class LeaveTransaction(Base):
    """Journal of every ledger movement: + for credit, - for debit"""
    __tablename__ = "leave_transactions"

    id = Column(Integer, primary_key=True, index=True)
    ledger_id = Column(Integer, ForeignKey("employee_leaves.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="SET NULL"), nullable=True, index=True)
    delta_days = Column(Numeric(6, 2), nullable=False)
    balance_after = Column(Numeric(6, 2), nullable=False)
    action = Column(String(30), nullable=False)
    remarks = Column(Text, nullable=True)
    # Set for scheduled credits so a repeated run for the same period cannot post twice
    idempotency_key = Column(String(128), nullable=True, unique=True)
    action_by_employee_id = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    action_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    ledger = relationship("EmployeeLeaveBalance", backref="transactions")
