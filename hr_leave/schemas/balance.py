"""
Leave balance (ledger) and accrual job schemas
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, model_validator


class LeaveBalanceOut(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    leave_type_code: Optional[str] = None
    leave_type_name: Optional[str] = None
    balance: float
    total_accrued: float
    total_consumed: float
    carry_forward_balance: float
    carry_forward_expires_on: Optional[date] = None
    last_accrual_date: Optional[date] = None
    next_accrual_date: Optional[date] = None
    last_rollover_year: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def attach_leave_type(cls, data):
        leave_type = getattr(data, "leave_type", None)
        if leave_type is not None and not isinstance(data, dict):
            values = {
                name: getattr(data, name, None)
                for name in cls.model_fields
                if name not in ("leave_type_code", "leave_type_name")
            }
            values["leave_type_code"] = leave_type.code
            values["leave_type_name"] = leave_type.name
            return values
        return data


class LeaveBalanceListResponse(BaseModel):
    employee_id: int
    items: List[LeaveBalanceOut]


class LeaveTransactionOut(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    leave_request_id: Optional[int] = None
    delta_days: float
    balance_after: float
    action: str
    remarks: Optional[str] = None
    action_by_employee_id: Optional[int] = None
    action_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BalanceAdjustRequest(BaseModel):
    """HR manual correction; positive delta credits, negative debits"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    employee_id: int
    leave_type_id: int
    delta: Decimal = Field(..., description="Days to add (negative to deduct)")
    remarks: str = Field(..., min_length=1, description="Reason for the adjustment")


class AccrualRunRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    as_of: Optional[date] = Field(None, description="Credit periods due on or before this date (default today)")


class YearCloseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    year: int = Field(..., ge=2000, le=2100, description="Year being closed")


class ExpireCarryForwardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    as_of: Optional[date] = Field(None, description="Expire carried days due on or before this date (default today)")


class AccrualRunResponse(BaseModel):
    organization_id: int
    as_of: date
    processed: int
    credited: int
    skipped: int
    failed: int
    total_days_credited: float
    details: List[Dict[str, Any]]


class YearCloseResponse(BaseModel):
    organization_id: int
    year: int
    processed: int
    failed: int
    total_carried_forward: float
    total_forfeited: float
    total_encashable_days: float
    total_encash_amount: float
    details: List[Dict[str, Any]]


class CarryForwardExpiryResponse(BaseModel):
    organization_id: int
    as_of: date
    processed: int
    failed: int
    total_expired: float
    details: List[Dict[str, Any]]


class AccrualStatusItem(BaseModel):
    employee_id: int
    emp_code: str
    name: str
    leave_type_id: int
    leave_type_code: str
    balance: float
    total_accrued: float
    total_consumed: float
    carry_forward_balance: float
    last_accrual_date: Optional[date] = None
    next_accrual_date: Optional[date] = None
    last_rollover_year: Optional[int] = None
