"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.forecasts import router as forecasts_router

__all__ = [
    "forecasts_router",
]
