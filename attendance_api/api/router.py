"""
Main API router
"""
from fastapi import APIRouter

from attendance_api.api.v1 import attendance, auto_checkout, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(attendance.router, prefix="/attendance", tags=["attendance"])
api_router.include_router(auto_checkout.router, prefix="/attendance", tags=["auto-checkout"])
