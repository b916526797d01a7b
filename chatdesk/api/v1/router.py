# chatdesk/api/v1/router.py
"""Main API router combining all v1 endpoints"""
from fastapi import APIRouter

from chatdesk.api.v1 import widget, visitors

api_router = APIRouter()

# Include all routers
api_router.include_router(widget.router, prefix="/widget", tags=["Widget"])
api_router.include_router(visitors.router, tags=["Agent Dashboard"])
