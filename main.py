"""
Entry point for `uvicorn main:app`
"""
from hr_leave.main import app  # noqa: F401
