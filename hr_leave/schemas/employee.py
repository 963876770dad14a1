"""
Employee schemas (read-only views embedded in leave responses)
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, ConfigDict


class EmployeeOut(BaseModel):
    id: int
    emp_code: str
    name: str
    role: str
    department_id: int
    reporting_manager_id: Optional[int] = None
    join_date: Optional[date] = None
    active: bool

    model_config = ConfigDict(from_attributes=True)
