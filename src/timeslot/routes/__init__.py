"""
Timeslot API Routes

FastAPI route handlers for the recurring series service.
"""
from .health import router as health_router
from .series import router as series_router

__all__ = [
    'health_router',
    'series_router',
]
