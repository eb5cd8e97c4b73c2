"""
app/services package marker.
"""

from app.services.intelligence_service import (
    FastAPIBackgroundTaskExecutor,
    IntelligenceService,
    get_intelligence_service,
)

__all__ = [
    "FastAPIBackgroundTaskExecutor",
    "IntelligenceService",
    "get_intelligence_service",
]
