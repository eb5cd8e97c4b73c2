"""
app/api/routers package marker.
"""

from app.api.routers.intelligence import router as intelligence_router

__all__ = ["intelligence_router"]
