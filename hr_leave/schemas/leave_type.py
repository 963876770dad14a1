"""
Leave type (policy catalog) schemas
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator
from hr_leave.models.leave import AccrualMethod, LeaveCategory


class LeaveTypeCreate(BaseModel):
    """Schema for creating a leave type"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    code: str = Field(..., min_length=1, max_length=32, description="Short code, unique per organization")
    name: str = Field(..., min_length=1, description="Display name")
    description: Optional[str] = None
    color: Optional[str] = Field(None, max_length=16)
    icon: Optional[str] = Field(None, max_length=64)
    category: Optional[LeaveCategory] = None

    accrual_method: AccrualMethod = Field(AccrualMethod.NONE, description="How often balance is credited")
    accrual_rate: Decimal = Field(Decimal("0"), ge=0, description="Days credited per accrual period")

    initial_balance: Decimal = Field(Decimal("0"), description="Balance a new ledger starts with")
    min_balance: Decimal = Field(Decimal("0"), description="Floor the balance may never go below")
    max_balance: Optional[Decimal] = Field(None, description="Cap on balance; null = unbounded")

    allow_carry_forward: bool = False
    carry_forward_limit: Optional[Decimal] = Field(None, ge=0, description="Days retained at year end; null = all")
    carry_forward_expiry_months: Optional[int] = Field(None, ge=0, description="Carried days expire after this many months")

    allow_encashment: bool = False
    encashment_rate: Optional[Decimal] = Field(None, ge=0, description="Currency per encashed day")

    requires_approval: bool = True
    approval_levels: int = Field(1, ge=1)
    auto_approve_for_days: Optional[Decimal] = Field(None, ge=0, description="Requests up to this many days skip approval")
    requires_documentation: bool = False
    required_documents: List[str] = Field(default_factory=list, description="Document kinds required on submission")

    min_service_months: int = Field(0, ge=0)
    min_advance_notice_days: int = Field(0, ge=0)
    max_consecutive_days: Optional[Decimal] = Field(None, gt=0)
    blackout_dates: List[date] = Field(default_factory=list, description="Dates on which this leave cannot start")

    active_flag: bool = True

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.upper()


class LeaveTypeUpdate(BaseModel):
    """Partial update: only fields that are sent are applied"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    code: Optional[str] = Field(None, min_length=1, max_length=32)
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = Field(None, max_length=16)
    icon: Optional[str] = Field(None, max_length=64)
    category: Optional[LeaveCategory] = None

    accrual_method: Optional[AccrualMethod] = None
    accrual_rate: Optional[Decimal] = Field(None, ge=0)

    initial_balance: Optional[Decimal] = None
    min_balance: Optional[Decimal] = None
    max_balance: Optional[Decimal] = None

    allow_carry_forward: Optional[bool] = None
    carry_forward_limit: Optional[Decimal] = Field(None, ge=0)
    carry_forward_expiry_months: Optional[int] = Field(None, ge=0)

    allow_encashment: Optional[bool] = None
    encashment_rate: Optional[Decimal] = Field(None, ge=0)

    requires_approval: Optional[bool] = None
    approval_levels: Optional[int] = Field(None, ge=1)
    auto_approve_for_days: Optional[Decimal] = Field(None, ge=0)
    requires_documentation: Optional[bool] = None
    required_documents: Optional[List[str]] = None

    min_service_months: Optional[int] = Field(None, ge=0)
    min_advance_notice_days: Optional[int] = Field(None, ge=0)
    max_consecutive_days: Optional[Decimal] = Field(None, gt=0)
    blackout_dates: Optional[List[date]] = None

    active_flag: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v is not None else v


class LeaveTypeOut(BaseModel):
    id: int
    organization_id: int
    code: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[LeaveCategory] = None
    accrual_method: AccrualMethod
    accrual_rate: float
    initial_balance: float
    min_balance: float
    max_balance: Optional[float] = None
    allow_carry_forward: bool
    carry_forward_limit: Optional[float] = None
    carry_forward_expiry_months: Optional[int] = None
    allow_encashment: bool
    encashment_rate: Optional[float] = None
    requires_approval: bool
    approval_levels: int
    auto_approve_for_days: Optional[float] = None
    requires_documentation: bool
    required_documents: List[str] = []
    min_service_months: int
    min_advance_notice_days: int
    max_consecutive_days: Optional[float] = None
    blackout_dates: List[date] = []
    active_flag: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeListResponse(BaseModel):
    items: List[LeaveTypeOut]
    total: int
    page: int
    page_size: int
