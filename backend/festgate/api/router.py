"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from festgate.api.routes import access, items, registrations, scan, tickets

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(access.router)
api_router.include_router(items.router)
api_router.include_router(tickets.router)
api_router.include_router(registrations.router)
api_router.include_router(scan.router)
