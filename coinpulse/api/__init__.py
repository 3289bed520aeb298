"""
FastAPI route modules for coinpulse.
"""

from coinpulse.api.dashboard_routes import router as dashboard_router
from coinpulse.api.diagnostics_routes import router as diagnostics_router

__all__ = ["dashboard_router", "diagnostics_router"]
