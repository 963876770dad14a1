"""
Authentication schemas
"""
from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Employee code + password exchanged for a bearer token"""
    model_config = ConfigDict(str_strip_whitespace=True)

    emp_code: str = Field(..., min_length=1, description="Employee code")
    password: str = Field(..., min_length=1, description="Password")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")
    employee_id: int
    organization_id: int
    role: str
