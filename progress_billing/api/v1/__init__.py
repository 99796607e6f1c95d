"""
API v1 - REST endpoints for progress billing.

Implements:
- Project endpoints (create, budget categories, Schedule of Values)
- Change order endpoints (record, status, net approved)
- Application endpoints (create, list, line edits, status, certificate)
"""
from fastapi import APIRouter

from .projects import router as projects_router
from .change_orders import router as change_orders_router
from .applications import router as applications_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(projects_router, prefix="/projects", tags=["Projects"])
api_router.include_router(change_orders_router, prefix="/change-orders", tags=["Change Orders"])
api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])
