"""
Config helpers for acquisition scraping.
"""

from app.scraping.config.loader import get_acquisition_settings
from app.scraping.config.models import (
    AcquisitionSettings,
    BackendId,
    Depth,
    FallbackStrategy,
    ScrapePreset,
)

__all__ = [
    "AcquisitionSettings",
    "BackendId",
    "Depth",
    "FallbackStrategy",
    "ScrapePreset",
    "get_acquisition_settings",
]
