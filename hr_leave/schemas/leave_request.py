"""
Leave request schemas
"""
from datetime import date, datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from hr_leave.models.leave import LeaveStatus, ApprovalAction
from hr_leave.schemas.employee import EmployeeOut


class AttachmentIn(BaseModel):
    """A supporting document reference; the file itself lives in external storage"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    document_kind: str = Field(..., min_length=1, description="Kind matched against the leave type's required_documents")
    name: Optional[str] = None
    url: Optional[str] = None


class LeaveSubmitRequest(BaseModel):
    """Schema for submitting a leave request"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    leave_type_id: int = Field(..., description="Leave type to draw from")
    start_date: date = Field(..., description="First day of leave")
    end_date: date = Field(..., description="Last day of leave (inclusive)")
    is_half_day: bool = Field(False, description="Half day; start_date must equal end_date")
    reason: Optional[str] = Field(None, description="Reason for leave")
    comments: Optional[str] = None
    work_handover_to: Optional[int] = Field(None, description="Employee covering during the leave")
    handover_notes: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    attachments: List[AttachmentIn] = Field(default_factory=list)


class LeaveUpdateRequest(BaseModel):
    """Edit of a PENDING request: only fields that are sent are applied"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    leave_type_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_half_day: Optional[bool] = None
    reason: Optional[str] = None
    comments: Optional[str] = None
    work_handover_to: Optional[int] = None
    handover_notes: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    attachments: Optional[List[AttachmentIn]] = None


class DecisionRequest(BaseModel):
    """Approve / cancel body"""
    model_config = ConfigDict(extra="forbid")

    comments: Optional[str] = Field(None, description="Optional remarks")


class RejectRequest(BaseModel):
    """Reject body: a reason is required"""
    model_config = ConfigDict(extra="forbid")

    comments: str = Field(..., min_length=1, description="Reason for rejection")

    @field_validator("comments")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("comments cannot be blank")
        return v.strip()


class BulkDecisionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    leave_request_ids: List[int] = Field(..., min_length=1, description="Requests to decide, processed independently")
    comments: Optional[str] = None

    @model_validator(mode="after")
    def dedupe_ids(self) -> "BulkDecisionRequest":
        self.leave_request_ids = list(dict.fromkeys(self.leave_request_ids))
        return self


class LeaveApprovalOut(BaseModel):
    id: int
    action_by: Optional[int] = None
    action: ApprovalAction
    level: int
    comments: Optional[str] = None
    action_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestOut(BaseModel):
    id: int
    organization_id: int
    employee_id: int
    employee: Optional[EmployeeOut] = None
    leave_type_id: int
    leave_type_code: Optional[str] = None
    start_date: date
    end_date: date
    total_days: float
    is_half_day: bool
    status: LeaveStatus
    debited_days: float
    reason: Optional[str] = None
    comments: Optional[str] = None
    approver_comments: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by_id: Optional[int] = None
    rejected_at: Optional[datetime] = None
    rejected_by_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[int] = None
    work_handover_to: Optional[int] = None
    handover_notes: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    attachments: List[Dict] = []
    approvals: List[LeaveApprovalOut] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def attach_leave_type_code(cls, data):
        # ORM objects expose the code through the relationship
        leave_type = getattr(data, "leave_type", None)
        if leave_type is not None and not isinstance(data, dict):
            values = {name: getattr(data, name, None) for name in cls.model_fields if name != "leave_type_code"}
            values["leave_type_code"] = leave_type.code
            return values
        return data


class LeaveRequestListResponse(BaseModel):
    items: List[LeaveRequestOut]
    total: int
    page: int
    page_size: int


class BulkItemOutcome(BaseModel):
    leave_request_id: int
    success: bool
    status: Optional[LeaveStatus] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None


class BulkDecisionResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: List[BulkItemOutcome]


class LeaveStatisticsOut(BaseModel):
    total_requests: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    cancelled_requests: int
    total_days_requested: float
    average_processing_hours: Optional[float] = None
    leave_type_distribution: Dict[str, int] = {}
    department_distribution: Dict[str, int] = {}
