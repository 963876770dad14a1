"""
Main API router
"""
from fastapi import APIRouter

from hr_leave.api.v1 import (
    health,
    auth,
    leave_types,
    leave_requests,
    leave_balances,
    accrual,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(leave_types.router, prefix="/leave-types", tags=["leave-types"])
api_router.include_router(leave_requests.router, prefix="/leave-requests", tags=["leave-requests"])
api_router.include_router(leave_balances.router, prefix="/leave-balances", tags=["leave-balances"])
api_router.include_router(accrual.router, prefix="/accrual", tags=["accrual"])
